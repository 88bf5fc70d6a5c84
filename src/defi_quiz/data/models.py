"""Dataclasses for snapshot entities, the template context and question drafts.

The engine never fetches anything: an upstream collaborator produces a
snapshot, ``data.snapshot`` parses it into these records, and every
template reads the resulting ``Context`` without mutating it.

Public API:
    ProtocolTopic, ChainTopic: the subject of an episode
    ProtocolDetail, ProtocolListEntry, FeesSummary, ChainListEntry,
    LeaderboardEntry: raw entities
    FetchedData: bag of raw entities (all optional)
    ComparisonEntry, DerivedMetrics: precomputed metrics
    Context: read-only aggregate handed to templates
    DifficultySignals, QuestionDraft, BuildLogEntry: build artifacts
    FORMAT_CARDINALITY, TF_CHOICES
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone

FORMAT_CARDINALITY: dict[str, int] = {"tf": 2, "ab": 2, "mc4": 4, "mc6": 6}
TF_CHOICES = ["True", "False"]
EPISODE_TYPES = ("protocol", "chain")


# ---------------------------------------------------------------------------
# Topics
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ProtocolTopic:
    """A protocol chosen as the subject of an episode."""

    slug: str
    name: str
    category: str
    tvl_rank: int
    tvl: float
    chains: tuple[str, ...] = ()
    has_fees_data: bool = False
    has_revenue_data: bool = False
    history_days: int = 0


@dataclass(frozen=True)
class ChainTopic:
    """A chain chosen as the subject of an episode (also a chain-pool entry)."""

    slug: str
    name: str
    tvl_rank: int
    tvl: float
    protocol_count: int = 0
    token_symbol: str | None = None
    history_days: int = 0
    change_30d: float | None = None


Topic = ProtocolTopic | ChainTopic


# ---------------------------------------------------------------------------
# Raw entities
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ProtocolDetail:
    """Per-protocol detail: TVL history plus current per-chain breakdown.

    Attributes:
        tvl: Time-ascending ``(timestamp, tvl_usd)`` points
        current_chain_tvls: Raw DefiLlama keys, including metric keys
            such as ``"Ethereum-borrowed"``
    """

    slug: str
    name: str
    category: str = ""
    chains: tuple[str, ...] = ()
    tvl: tuple[tuple[float, float], ...] = ()
    current_chain_tvls: dict[str, float] = field(default_factory=dict)


@dataclass(frozen=True)
class ProtocolListEntry:
    slug: str
    name: str
    category: str = ""
    chains: tuple[str, ...] = ()
    tvl: float = 0.0


@dataclass(frozen=True)
class FeesSummary:
    """Fees or revenue totals with a daily chart of ``(timestamp, usd)`` points."""

    total_7d: float | None = None
    chart: tuple[tuple[float, float], ...] = ()


@dataclass(frozen=True)
class ChainListEntry:
    name: str
    tvl: float
    token_symbol: str | None = None


@dataclass(frozen=True)
class LeaderboardEntry:
    """One protocol in a chain-level fees or DEX volume overview."""

    name: str
    value: float = 0.0
    category: str | None = None


@dataclass(frozen=True)
class FetchedData:
    """Everything the upstream fetch produced; any field may be missing."""

    protocol_detail: ProtocolDetail | None = None
    protocol_list: tuple[ProtocolListEntry, ...] | None = None
    protocol_fees: FeesSummary | None = None
    protocol_revenue: FeesSummary | None = None
    chain_list: tuple[ChainListEntry, ...] | None = None
    chain_history: tuple[tuple[float, float], ...] | None = None
    chain_fees: tuple[LeaderboardEntry, ...] | None = None
    chain_dex_volume: tuple[LeaderboardEntry, ...] | None = None
    chain_pool: tuple[ChainTopic, ...] | None = None


# ---------------------------------------------------------------------------
# Derived metrics and context
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ComparisonEntry:
    slug: str
    name: str
    tvl: float
    rank: int
    category: str | None = None


@dataclass(frozen=True)
class DerivedMetrics:
    """Metrics computed once per build from the snapshot."""

    # Protocol metrics
    tvl_rank: int | None = None
    tvl_rank_bucket: str | None = None
    tvl_band: str | None = None
    chain_count: int | None = None
    chain_count_bucket: str | None = None
    change_7d: float | None = None
    change_30d: float | None = None
    change_bucket: str | None = None
    tvl_volatility: float | None = None
    ath_value: float | None = None
    ath_date: float | None = None
    ath_month: str | None = None
    top_chain: str | None = None
    top_chain_tvl: float | None = None
    top_chain_share: float | None = None
    fees_7d: float | None = None
    revenue_7d: float | None = None
    rev_to_fees_ratio: float | None = None

    # Chain metrics
    chain_tvl_rank: int | None = None
    chain_tvl_band: str | None = None
    chain_change_30d: float | None = None
    chain_ath_value: float | None = None
    chain_ath_date: float | None = None
    chain_ath_month: str | None = None

    # Peers for comparisons
    nearby_protocols: tuple[ComparisonEntry, ...] = ()
    category_protocols: tuple[ComparisonEntry, ...] = ()
    nearby_chains: tuple[ComparisonEntry, ...] = ()
    current_tvl: float | None = None


@dataclass(frozen=True)
class Context:
    """Read-only input to every template and fallback.

    Attributes:
        date: Episode date as ``YYYY-MM-DD`` (UTC)
        episode_type: "protocol" or "chain"
        topic: Subject of the episode
        data: Raw entities from the snapshot
        derived: Precomputed metrics
    """

    date: str
    episode_type: str
    topic: ProtocolTopic | ChainTopic
    data: FetchedData
    derived: DerivedMetrics

    @property
    def as_of_ts(self) -> float:
        """Midnight UTC of the episode date; the engine's only notion of "now"."""
        moment = datetime.strptime(self.date, "%Y-%m-%d").replace(tzinfo=timezone.utc)
        return moment.timestamp()


# ---------------------------------------------------------------------------
# Build artifacts
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DifficultySignals:
    format: str
    familiarity_bucket: str
    margin: float | None
    volatility: float | None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class QuestionDraft:
    """A question produced by a template or fallback, before explanation text."""

    template_id: str
    format: str
    prompt: str
    choices: list[str]
    answer_index: int
    signals: DifficultySignals
    explain_data: dict = field(default_factory=dict)
    clues: list[str] | None = None
    answer_value: bool | None = None
    build_notes: list[str] = field(default_factory=list)

    def validate(self) -> list[str]:
        """Return a list of contract violations (empty = valid)."""
        errors: list[str] = []
        expected = FORMAT_CARDINALITY.get(self.format)
        if expected is None:
            errors.append(f"unknown format '{self.format}'")
        elif len(self.choices) != expected:
            errors.append(
                f"format {self.format} needs {expected} choices, got {len(self.choices)}"
            )
        if not 0 <= self.answer_index < len(self.choices):
            errors.append(f"answer_index {self.answer_index} out of range")
        if self.format == "tf":
            if self.choices != TF_CHOICES:
                errors.append(f"true/false choices must be {TF_CHOICES}, got {self.choices}")
            if self.answer_value is None:
                errors.append("true/false draft is missing answer_value")
            elif self.answer_value != (self.answer_index == 0):
                errors.append("answer_value disagrees with answer_index")
        if self.signals.format != self.format:
            errors.append("signals.format disagrees with format")
        return errors


@dataclass
class BuildLogEntry:
    """One decision made while assembling an episode."""

    decision: str
    slot: str | None = None
    template: str | None = None
    format: str | None = None
    reason: str | None = None
    score: float | None = None
    target: str | None = None
    original_format: str | None = None
    new_format: str | None = None
    qid: str | None = None

    def to_dict(self) -> dict:
        return {key: value for key, value in asdict(self).items() if value is not None}


__all__ = [
    "FORMAT_CARDINALITY",
    "TF_CHOICES",
    "EPISODE_TYPES",
    "ProtocolTopic",
    "ChainTopic",
    "Topic",
    "ProtocolDetail",
    "ProtocolListEntry",
    "FeesSummary",
    "ChainListEntry",
    "LeaderboardEntry",
    "FetchedData",
    "ComparisonEntry",
    "DerivedMetrics",
    "Context",
    "DifficultySignals",
    "QuestionDraft",
    "BuildLogEntry",
]
