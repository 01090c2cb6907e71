"""
Statistics over stored training data: win counts, participation, categories.

Everything is recomputed from the full entry list on every call; there are
no cached counters, so the same list always produces the same numbers.
"""
import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple

from app.base.chain_catalogue import ChainCatalogue
from app.base.errors import StatisticsComputationError
from app.base.model_registry import ModelRegistry
from app.base.models import ChatMode, TrainingDataEntry

logger = logging.getLogger(__name__)

SECURITY_KEYWORDS = ("security", "safe", "risk", "hack")
TECHNICAL_KEYWORDS = ("technical", "code", "develop", "smart contract")
CATEGORIES = ("security", "technical", "general")
RECENT_TREND_WINDOW = 10

MODEL_WIN_MODES = (ChatMode.PARALLEL, ChatMode.UNIVERSAL)
CHAIN_WIN_MODES = (ChatMode.CHAIN, ChatMode.UNIVERSAL)

@dataclass(frozen=True)
class ModelStats:
    model_id: str
    name: str
    participation: int
    wins: int
    win_rate: float

@dataclass(frozen=True)
class ChainStats:
    chain_id: str
    name: str
    models: Tuple[str, ...]
    participation: int
    wins: int
    win_rate: float

@dataclass(frozen=True)
class RecentTrend:
    type: str  # "model", "chain" or "tied"
    id: str
    name: str

@dataclass(frozen=True)
class TrainingStats:
    total_sessions: int
    with_selections: int
    parallel_sessions: int
    chain_sessions: int
    universal_sessions: int
    model_stats: List[ModelStats] = field(default_factory=list)
    chain_stats: List[ChainStats] = field(default_factory=list)
    categories: Dict[str, Dict[str, int]] = field(default_factory=dict)
    recent_trend: RecentTrend = RecentTrend(type="tied", id="", name="No clear trend")
    skipped_entries: int = 0

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        for chain in data["chain_stats"]:
            chain["models"] = list(chain["models"])
        return data

def categorize_question(question: str) -> str:
    """Classify a question by keyword into security, technical or general."""
    lowered = question.lower()
    if any(keyword in lowered for keyword in SECURITY_KEYWORDS):
        return "security"
    if any(keyword in lowered for keyword in TECHNICAL_KEYWORDS):
        return "technical"
    return "general"

def _parse_entry(raw: Any) -> TrainingDataEntry:
    try:
        return TrainingDataEntry.from_dict(raw)
    except (KeyError, TypeError, ValueError, AttributeError) as e:
        raise StatisticsComputationError(f"Malformed training entry: {e}") from e

def compute_statistics(
    records: Iterable[Any],
    registry: ModelRegistry,
    catalogue: ChainCatalogue,
) -> TrainingStats:
    """Aggregate stored records into dashboard statistics.

    Args:
        records: Raw persisted records, newest first (TrainingDataStore.list_all())
        registry: Models to report on
        catalogue: Chains to report on

    Returns:
        TrainingStats; malformed records are skipped and counted in skipped_entries
    """
    entries: List[TrainingDataEntry] = []
    skipped = 0
    for raw in records:
        try:
            entries.append(_parse_entry(raw))
        except StatisticsComputationError as e:
            skipped += 1
            logger.warning(f"Skipping training entry during aggregation: {str(e)}")

    selected = [e for e in entries if e.selected_option is not None]
    total_selections = len(selected)

    def win_rate(wins: int) -> float:
        return (wins / total_selections) * 100 if total_selections > 0 else 0.0

    model_stats = []
    for model in registry.list_models():
        wins = len([e for e in selected if e.chat_mode in MODEL_WIN_MODES and e.selected_option == model.model_id])
        model_stats.append(ModelStats(
            model_id=model.model_id,
            name=model.name,
            participation=len([e for e in entries if model.model_id in e.responses]),
            wins=wins,
            win_rate=win_rate(wins),
        ))

    chain_stats = []
    for chain in catalogue.list_chains():
        wins = len([e for e in selected if e.chat_mode in CHAIN_WIN_MODES and e.selected_option == chain.chain_id])
        participation = len([
            e for e in entries
            if (e.chain_responses and chain.chain_id in e.chain_responses)
            or (e.selected_chain is not None and e.selected_chain.chain_id == chain.chain_id)
        ])
        chain_stats.append(ChainStats(
            chain_id=chain.chain_id,
            name=chain.name,
            models=chain.models,
            participation=participation,
            wins=wins,
            win_rate=win_rate(wins),
        ))

    categories: Dict[str, Dict[str, int]] = {category: {} for category in CATEGORIES}
    for entry in selected:
        bucket = categories[categorize_question(entry.question)]
        bucket[entry.selected_option] = bucket.get(entry.selected_option, 0) + 1

    return TrainingStats(
        total_sessions=len(entries),
        with_selections=total_selections,
        parallel_sessions=len([e for e in entries if e.chat_mode == ChatMode.PARALLEL]),
        chain_sessions=len([e for e in entries if e.chat_mode == ChatMode.CHAIN]),
        universal_sessions=len([e for e in entries if e.chat_mode == ChatMode.UNIVERSAL]),
        model_stats=model_stats,
        chain_stats=chain_stats,
        categories=categories,
        recent_trend=_recent_trend(selected[:RECENT_TREND_WINDOW], registry, catalogue),
        skipped_entries=skipped,
    )

def _recent_trend(
    recent: List[TrainingDataEntry],
    registry: ModelRegistry,
    catalogue: ChainCatalogue,
) -> RecentTrend:
    """Most-selected option among the newest selections; the first to reach the maximum wins."""
    counts: Dict[str, int] = {}
    for entry in recent:
        counts[entry.selected_option] = counts.get(entry.selected_option, 0) + 1

    best: Optional[str] = None
    best_count = 0
    for option_id, count in counts.items():
        if count > best_count:
            best, best_count = option_id, count

    if best is None:
        return RecentTrend(type="tied", id="", name="No clear trend")

    chain = catalogue.resolve(best)
    if chain is not None:
        return RecentTrend(type="chain", id=best, name=chain.name)
    model = registry.get(best)
    return RecentTrend(type="model", id=best, name=model.name if model else best)

class StatisticsAggregator:
    """Computes dashboard statistics from a training data store on demand."""

    def __init__(self, store: Any, registry: ModelRegistry, catalogue: ChainCatalogue):
        self.store = store
        self.registry = registry
        self.catalogue = catalogue

    async def compute(self) -> TrainingStats:
        records = await self.store.list_all()
        return compute_statistics(records, self.registry, self.catalogue)
