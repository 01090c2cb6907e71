"""
Command line entry point: ask questions, inspect training data, or serve the API.
"""
import argparse
import asyncio
import json
import logging
import sys
from typing import Dict, List, Optional

from app.base.chain_catalogue import ChainCatalogue
from app.base.comparison_session import ComparisonSession
from app.base.errors import InvalidSelection, PersistenceError
from app.base.llm_interface import LLMInterface
from app.base.model_registry import ModelRegistry
from app.base.models import ChatMode
from app.base.orchestrator import OrchestrationEngine, OrchestrationResult
from db.kv_store import create_kv_store
from services.training import StatisticsAggregator, TrainingDataStore
from utils.config import LOG_LEVEL, STORAGE_BACKEND
from utils.wallet_data import load_wallet_file

# Configure logging
logging.basicConfig(
    level=getattr(logging, LOG_LEVEL.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[logging.StreamHandler(sys.stderr)]
)
# Set specific module log levels
logging.getLogger('httpx').setLevel(logging.ERROR)  # Disable httpx request logs
logging.getLogger('asyncio').setLevel(logging.WARNING)

logger = logging.getLogger(__name__)

class Core:
    """The explicitly constructed core components."""

    def __init__(self, storage_backend: str = STORAGE_BACKEND):
        self.registry = ModelRegistry()
        self.catalogue = ChainCatalogue()
        self.invoker = LLMInterface()
        self.engine = OrchestrationEngine(self.registry, self.catalogue, self.invoker)
        self.store = TrainingDataStore(create_kv_store(storage_backend))
        self.aggregator = StatisticsAggregator(self.store, self.registry, self.catalogue)

def parse_enabled_models(models: Optional[str]) -> Optional[Dict[str, bool]]:
    """Turn 'openai,gemini' into {'openai': True, 'gemini': True}; None enables all."""
    if not models:
        return None
    return {model_id.strip(): True for model_id in models.split(",") if model_id.strip()}

def format_result(result: OrchestrationResult) -> List[str]:
    lines: List[str] = []
    if result.no_providers:
        return [result.message or "No providers available"]
    for message in result.parallel:
        status = "error" if message.is_error else "ok"
        lines.append(f"[{message.source.key}] ({status}) {message.text}")
    for chained in result.chains:
        status = "error" if chained.error else f"{len(chained.execution.steps)} steps, {chained.execution.total_processing_time}ms"
        lines.append(f"[{chained.chain_id}: {chained.chain.name}] ({status}) {chained.final_message.text}")
    return lines

async def ask(core: Core, args: argparse.Namespace) -> int:
    wallet_data = load_wallet_file(args.wallet_file) if args.wallet_file else None
    mode = ChatMode(args.mode)
    result = await core.engine.execute(
        args.question, wallet_data, mode, parse_enabled_models(args.models), args.chain
    )
    for line in format_result(result):
        print(line)
    if result.no_providers:
        return 1

    if args.select:
        session = ComparisonSession.create(args.question, wallet_data, mode)
        session.apply_result(result)
        try:
            session.select(args.select)
        except InvalidSelection as e:
            logger.error(str(e))
            return 1
        if not await core.store.save_comparison(session):
            return 1
        print(f"Saved selection {args.select} for session {session.id}")
    return 0

async def run_command(core: Core, args: argparse.Namespace) -> int:
    if args.command == "ask":
        return await ask(core, args)
    if args.command == "stats":
        stats = await core.aggregator.compute()
        print(json.dumps(stats.to_dict(), indent=2))
        return 0
    if args.command == "export":
        print(await core.store.export_as_json())
        return 0
    if args.command == "clear":
        try:
            await core.store.clear()
        except PersistenceError as e:
            logger.error(f"Failed to clear training data: {e}")
            return 1
        print("Training data cleared")
        return 0
    return 2

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='Ask several AI models about a Sui wallet and compare answers')
    parser.add_argument('--storage', default=STORAGE_BACKEND, choices=['file', 'postgres', 'memory'],
                        help='Where training data is kept')
    subparsers = parser.add_subparsers(dest='command', required=True)

    ask_parser = subparsers.add_parser('ask', help='Ask a question')
    ask_parser.add_argument('question', help='Question for the models')
    ask_parser.add_argument('--mode', default='parallel', choices=[m.value for m in ChatMode])
    ask_parser.add_argument('--models', help='Comma separated model ids to enable (default: all)')
    ask_parser.add_argument('--chain', help='In chain mode, run only this chain id')
    ask_parser.add_argument('--wallet-file', help='JSON file with the wallet snapshot')
    ask_parser.add_argument('--select', help='Model id or chain id to record as the preferred answer')

    subparsers.add_parser('stats', help='Show comparison statistics')
    subparsers.add_parser('export', help='Export judged comparisons as JSON')
    subparsers.add_parser('clear', help='Delete all training data')
    subparsers.add_parser('serve', help='Run the HTTP API')
    return parser

def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)
    core = Core(args.storage)

    if args.command == 'serve':
        from services.api import create_app, run_api_server
        run_api_server(create_app(core.engine, core.store, core.invoker))
        return 0

    return asyncio.run(run_command(core, args))

if __name__ == "__main__":
    sys.exit(main())
