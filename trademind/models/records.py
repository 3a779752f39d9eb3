"""
Core Data Models for the TradeMind Ledger

These models define the schemas of everything the ledger owns:
1. Trade records (the journal entries)
2. The strategy profile (the active rule-set)
3. Session artifacts (pre-market notes, analysis snapshots)
4. The backup document that mirrors all of the above remotely

DESIGN DECISION: Field names are camelCase on the wire (local storage and
the Drive backup) and snake_case in Python. The backup written by older
journal versions uses the same casing, so existing backups stay readable.

Unknown fields on records and profiles are preserved rather than dropped.
The AI analysis layer and the UI attach payloads the engine never
interprets; they must survive a save/load/backup round trip untouched.
"""

from datetime import date, datetime, time
from enum import Enum
from typing import Any, Optional
from uuid import uuid4

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel


BACKUP_FORMAT_VERSION = "2.0"
TEMPLATE_MARKER = "(Template)"


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class RecordOutcome(str, Enum):
    """
    Outcome tag of a trade record.

    OPEN records are not closed yet and never count towards the tilt check.
    """
    OPEN = "OPEN"
    WIN = "WIN"
    LOSS = "LOSS"
    BREAK_EVEN = "BREAK_EVEN"
    SKIPPED = "SKIPPED"


class TradeDirection(str, Enum):
    LONG = "LONG"
    SHORT = "SHORT"


class OptionType(str, Enum):
    CE = "CE"
    PE = "PE"
    FUT = "FUT"
    SPOT = "SPOT"


class ExecutionType(str, Enum):
    PAPER = "PAPER"
    REAL = "REAL"


class ArtifactKind(str, Enum):
    """
    Kinds of session artifacts.

    Each kind holds at most one artifact; the value doubles as the
    wire name used by older backups.
    """
    PRE_MARKET_NOTES = "preMarketNotes"
    PRE_MARKET_ANALYSIS = "preMarketAnalysis"
    LIVE_MARKET_ANALYSIS = "liveMarketAnalysis"
    POST_MARKET_ANALYSIS = "postMarketAnalysis"
    NEWS_ANALYSIS = "newsAnalysis"
    PRE_MARKET_IMAGES = "preMarketImages"
    LIVE_MARKET_IMAGES = "liveMarketImages"
    POST_MARKET_IMAGES = "postMarketImages"


class _WireModel(BaseModel):
    """Base for models serialized with camelCase keys."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
    )

    def to_wire(self) -> dict:
        """Dump with wire (camelCase) keys, JSON-compatible values."""
        return self.model_dump(mode="json", by_alias=True)


# =============================================================================
# TRADE RECORD
# =============================================================================

class TradeNote(_WireModel):
    """A timestamped entry of the live commentary timeline."""

    id: str = Field(default_factory=lambda: uuid4().hex)
    timestamp: str = Field(
        ...,
        description="Wall clock time the note was taken (HH:MM:SS)"
    )
    content: str
    type: str = Field(
        default="logic",
        description="logic, emotion or market"
    )


class SystemChecks(_WireModel):
    analyzed_pre_market: bool = False
    waited_for_open: bool = False
    checked_sensibull_oi: bool = Field(
        default=False,
        alias="checkedSensibullOI",
    )
    exit_time_limit: bool = False


class TradeRecord(_WireModel):
    """
    A single journal entry.

    CRITICAL: `id` is the record's identity and never changes after
    creation. Every other field may be overwritten by an upsert.
    """
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
        extra="allow",
    )

    # Identity
    id: str = Field(
        default_factory=lambda: uuid4().hex,
        min_length=1,
        frozen=True,
        description="Opaque unique record identifier"
    )

    # When
    date: str = Field(
        ...,
        pattern=r"^\d{4}-\d{2}-\d{2}$",
        description="Trade date (YYYY-MM-DD)"
    )
    entry_time: Optional[str] = Field(
        default=None,
        pattern=r"^\d{2}:\d{2}(:\d{2})?$",
    )
    exit_time: Optional[str] = Field(
        default=None,
        pattern=r"^\d{2}:\d{2}(:\d{2})?$",
    )

    # What
    instrument: str = Field(default="NIFTY 50")
    execution_type: ExecutionType = ExecutionType.PAPER
    option_type: Optional[OptionType] = None
    strike_price: Optional[float] = None
    nifty_entry_price: Optional[float] = None
    nifty_exit_price: Optional[float] = None
    direction: TradeDirection = TradeDirection.LONG
    entry_price: float = 0.0
    exit_price: Optional[float] = None
    quantity: float = Field(default=75, ge=0)
    stop_loss: Optional[float] = None
    take_profit: Optional[float] = None

    # Intraday context
    timeframe: str = Field(default="5m")
    session: Optional[str] = None
    opening_type: Optional[str] = None
    spot_points_captured: Optional[float] = None
    trade_duration_mins: Optional[float] = None
    system_checks: Optional[SystemChecks] = None

    # Analysis and psychology
    setup_name: str = ""
    market_context: str = ""
    entry_reason: str = ""
    exit_reason: Optional[str] = None
    notes: list[TradeNote] = Field(default_factory=list)
    chart_image: Optional[str] = None
    oi_image: Optional[str] = None
    confluences: list[str] = Field(default_factory=list)
    mistakes: list[str] = Field(default_factory=list)
    followed_system: bool = True
    discipline_rating: int = Field(default=5, ge=0, le=5)
    emotional_state: str = "Neutral"

    # Result
    pnl: Optional[float] = None
    outcome: RecordOutcome = RecordOutcome.OPEN

    # Opaque payload from the AI analysis collaborator
    ai_feedback: Optional[Any] = None

    @field_validator('entry_time', 'exit_time', mode='before')
    @classmethod
    def empty_time_is_none(cls, v):
        """Older exports write missing times as empty strings."""
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator('date')
    @classmethod
    def date_is_calendar_day(cls, v: str) -> str:
        """The pattern alone lets through days like 2024-02-30."""
        date.fromisoformat(v)
        return v

    @field_validator('entry_time', 'exit_time')
    @classmethod
    def time_is_clock_time(cls, v: Optional[str]) -> Optional[str]:
        if v is not None:
            time.fromisoformat(v)
        return v

    @property
    def is_closed(self) -> bool:
        return self.outcome != RecordOutcome.OPEN

    def exit_timestamp(self) -> Optional[datetime]:
        """Combine the trade date and exit time, None if no exit time."""
        if not self.exit_time:
            return None
        return datetime.fromisoformat(f"{self.date}T{self.exit_time}")

    def with_updates(self, **changes: Any) -> "TradeRecord":
        """
        Return a validated copy with `changes` applied.

        The identity is kept; an `id` in `changes` is ignored.
        """
        changes.pop("id", None)
        data = self.model_dump()
        data.update(changes)
        return TradeRecord.model_validate(data)


# =============================================================================
# STRATEGY PROFILE
# =============================================================================

class StrategyStep(_WireModel):
    title: str
    items: list[str] = Field(default_factory=list)


class StrategyRule(_WireModel):
    title: str
    description: str = ""


class StrategyLink(_WireModel):
    label: str
    url: str
    description: str = ""
    icon: Optional[str] = None


class ProfileDocument(_WireModel):
    """
    The active strategy profile.

    There is exactly one current profile. Replacing it is a full
    overwrite, never a merge.
    """
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
        extra="allow",
    )

    name: str = Field(..., min_length=1, max_length=200)
    description: str = ""
    tags: list[str] = Field(default_factory=list)
    steps: list[StrategyStep] = Field(default_factory=list)
    links: list[StrategyLink] = Field(default_factory=list)
    rules: list[StrategyRule] = Field(default_factory=list)

    @property
    def is_template(self) -> bool:
        """True while the user has not customized the shipped profile."""
        return TEMPLATE_MARKER in self.name


def default_profile() -> ProfileDocument:
    """The template profile used until the user imports or edits one."""
    return ProfileDocument(
        name=f"Intraday Trend System {TEMPLATE_MARKER}",
        description=(
            "A disciplined approach to following market trends. Define your "
            "edge, wait for the setup, and execute with precision."
        ),
        tags=["Trend Following", "Risk: 1:2", "Discipline"],
        steps=[
            StrategyStep(
                title="Phase 1: Analysis",
                items=[
                    "Analyze higher timeframe trends (Daily/Hourly)",
                    "Identify key support & resistance levels",
                    "Check economic calendar for events",
                ],
            ),
            StrategyStep(
                title="Phase 2: Execution",
                items=[
                    "Wait for price to reach a key level",
                    "Confirm with a trigger candle",
                    "Place the stop loss before entering",
                ],
            ),
        ],
        rules=[
            StrategyRule(
                title="PROTECT CAPITAL",
                description="Never risk more than 1-2% of total capital on a single trade.",
            ),
            StrategyRule(
                title="NO EMOTIONS",
                description="Trade the chart, not your feelings. If you feel tilted, stop trading.",
            ),
            StrategyRule(
                title="FOLLOW THE PLAN",
                description="Execution is the only thing you control. Outcome is probability.",
            ),
        ],
    )


# =============================================================================
# SESSION ARTIFACTS
# =============================================================================

class SessionArtifact(_WireModel):
    """
    A per-session artifact (notes, an analysis snapshot, chart images).

    `date` is the logical key of the artifact. The payload is opaque.
    """

    date: str = Field(
        default="",
        description="Session date the artifact belongs to (YYYY-MM-DD)"
    )
    timestamp: Optional[str] = Field(
        default=None,
        description="When the artifact was written (ISO 8601)"
    )
    data: Any = None

    @classmethod
    def from_legacy(cls, value: Any) -> "SessionArtifact":
        """
        Wrap a value stored by older journal versions.

        Old backups stored artifacts either as {date, timestamp, data} or
        as a bare payload such as {date, notes}.
        """
        if isinstance(value, dict) and "data" in value:
            return cls.model_validate(value)
        artifact_date = ""
        if isinstance(value, dict) and isinstance(value.get("date"), str):
            artifact_date = value["date"]
        return cls(date=artifact_date, data=value)

    def sort_key(self) -> tuple[str, str]:
        return (self.date or "", self.timestamp or "")


# =============================================================================
# BACKUP DOCUMENT
# =============================================================================

class BackupDocument(_WireModel):
    """
    The full aggregate: every record, the profile and all artifacts.

    This is the ONLY remote representation; there is no per-record
    granularity on the remote side. The local aggregates serialize to
    exactly the same field shapes.
    """

    records: list[TradeRecord] = Field(
        default_factory=list,
        validation_alias=AliasChoices("records", "trades"),
    )
    profile: Optional[ProfileDocument] = Field(
        default=None,
        validation_alias=AliasChoices("profile", "strategy"),
    )
    session_artifacts: dict[ArtifactKind, SessionArtifact] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("sessionArtifacts", "session_artifacts"),
    )
    last_updated: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("lastUpdated", "last_updated"),
    )
    version: str = BACKUP_FORMAT_VERSION

    @model_validator(mode='before')
    @classmethod
    def fold_legacy_artifacts(cls, data: Any) -> Any:
        """Move per-kind top-level keys of old backups into sessionArtifacts."""
        if not isinstance(data, dict):
            return data
        legacy = {
            kind.value: data[kind.value]
            for kind in ArtifactKind
            if data.get(kind.value) is not None
        }
        if not legacy:
            return data
        data = {k: v for k, v in data.items() if k not in legacy}
        artifacts = dict(
            data.get("sessionArtifacts") or data.get("session_artifacts") or {}
        )
        for key, value in legacy.items():
            artifacts.setdefault(key, SessionArtifact.from_legacy(value))
        data["sessionArtifacts"] = artifacts
        data.pop("session_artifacts", None)
        return data

    def is_empty(self) -> bool:
        """True when the document carries nothing worth restoring."""
        return (
            not self.records
            and self.profile is None
            and not self.session_artifacts
        )

    def stamped(self) -> "BackupDocument":
        """Copy with last_updated set to now."""
        return self.model_copy(
            update={"last_updated": datetime.now().isoformat()}
        )


def today_key(today: Optional[date] = None) -> str:
    """Date key (YYYY-MM-DD) for the local calendar day."""
    return (today or date.today()).isoformat()
