from enum import StrEnum


class MatchupType(StrEnum):
    TWO_BALL = "2ball"
    THREE_BALL = "3ball"


class WinMethod(StrEnum):
    SCORE = "score"
    POSITION = "position"
    MANUAL = "manual"


class ResultConfidence(StrEnum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class TrendDirection(StrEnum):
    IMPROVING = "improving"
    DECLINING = "declining"
    STABLE = "stable"


class PickStatus(StrEnum):
    WON = "won"
    LOST = "lost"
    PUSH = "push"
    VOID = "void"
    LEADING = "leading"
    TRAILING = "trailing"
    TIED = "tied"
    PENDING = "pending"


class PickOutcome(StrEnum):
    WIN = "win"
    LOSS = "loss"
    PUSH = "push"
    VOID = "void"
