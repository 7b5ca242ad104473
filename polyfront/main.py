"""
Main entry point for the Polymarket Frontrun Bot.
Builds the clients and the pipeline and runs until a shutdown signal.
"""

import asyncio
import signal
import sys
from typing import Optional

# Use uvloop for better performance on Linux
try:
    import uvloop
    asyncio.set_event_loop_policy(uvloop.EventLoopPolicy())
except ImportError:
    pass  # uvloop not available (Windows)

from .config import load_config, Config
from .clients.clob_client import CLOBClient, SimulatedCLOBClient
from .clients.data_api_client import DataApiClient
from .clients.mempool_client import MempoolClient
from .clients.polygon_client import PolygonClient
from .execution.decision import DecisionEngine
from .execution.executor import FrontrunExecutor
from .execution.models import ExecutionOutcome, ExecutionStatus
from .pipeline import FrontrunPipeline
from .signals.aggregator import TradeAggregator
from .signals.live_listener import LiveFeedListener
from .signals.merger import SignalMerger
from .signals.poller import PollFallback
from .utils.logger import setup_logging, get_logger
from .utils.validation import ValidationError

logger = get_logger("main")


class FrontrunBot:
    """
    Main bot orchestrator.

    Coordinates:
    - Client initialization and startup balance checks
    - The frontrun pipeline lifecycle
    - Outcome accounting and periodic stats
    """

    def __init__(self, config: Config):
        """Initialize bot with configuration."""
        self.config = config
        self._shutdown_event = asyncio.Event()

        self.polygon_client = PolygonClient(
            rpc_url=config.wallet.rpc_url,
            wallet_address=config.wallet.wallet_address,
            usdc_address=config.wallet.usdc_address
        )

        self.data_api = DataApiClient(base_url=config.polymarket.data_api_url)

        if config.risk.simulation_mode:
            self.order_client = SimulatedCLOBClient()
        else:
            self.order_client = CLOBClient(
                private_key=config.wallet.private_key,
                api_key=config.polymarket.api_key,
                api_secret=config.polymarket.api_secret,
                api_passphrase=config.polymarket.api_passphrase,
                funder=config.wallet.wallet_address,
                chain_id=config.wallet.chain_id
            )

        self.pipeline: Optional[FrontrunPipeline] = None

        # Stats
        self._outcomes: dict[str, int] = {}

    async def initialize(self) -> None:
        """Initialize all components."""
        logger.info("Initializing Polymarket Frontrun Bot")

        await self.polygon_client.initialize()
        await self.data_api.initialize()
        await self.order_client.initialize()

        await self._check_balances()

        self.pipeline = self.build_pipeline()
        self.pipeline.subscribe(self._on_outcome)

        logger.info("Bot initialized successfully")

    async def _check_balances(self) -> None:
        """Log wallet balances and warn when they look too low to trade."""
        try:
            balance = await self.polygon_client.get_balance()
        except Exception as e:
            logger.error(f"Failed to fetch balances: {e}")
            logger.warning("Continuing anyway, but trades may fail if balances are insufficient")
            return

        logger.info(
            "Wallet balance",
            extra={
                "wallet": self.config.wallet.wallet_address,
                "usdc": balance.usdc_balance,
                "pol": balance.pol_balance
            }
        )

        if balance.pol_balance < self.config.risk.min_pol_balance:
            logger.warning(
                f"Low POL balance: {balance.pol_balance:.4f} < {self.config.risk.min_pol_balance}"
            )
        if balance.usdc_balance < self.config.risk.min_usdc_balance:
            logger.warning(
                f"Low USDC balance: {balance.usdc_balance:.2f} < {self.config.risk.min_usdc_balance}"
            )

    def build_pipeline(self) -> FrontrunPipeline:
        """Wire sources and stages from configuration."""
        frontrun = self.config.frontrun
        watched = set(frontrun.target_addresses)
        raw_queue: asyncio.Queue = asyncio.Queue()

        mempool_client = MempoolClient(
            ws_url=self.config.wallet.ws_rpc_url,
            resolve_hash=self.polygon_client.get_transaction
        )
        live_listener = LiveFeedListener(mempool_client, watched, raw_queue)

        poller = PollFallback(
            data_api=self.data_api,
            watched_accounts=watched,
            output_queue=raw_queue,
            interval_seconds=frontrun.fetch_interval_seconds
        )

        decision_engine = DecisionEngine(
            balance_oracle=self.polygon_client,
            gas_oracle=self.polygon_client,
            min_trade_size_usd=frontrun.min_trade_size_usd,
            frontrun_size_multiplier=frontrun.frontrun_size_multiplier,
            gas_price_multiplier=frontrun.gas_price_multiplier
        )

        executor = FrontrunExecutor(
            order_client=self.order_client,
            balance_oracle=self.polygon_client,
            release_key=decision_engine.release,
            retry_limit=frontrun.retry_limit
        )

        return FrontrunPipeline(
            merger=SignalMerger(),
            aggregator=TradeAggregator(
                enabled=frontrun.aggregation_enabled,
                window_seconds=frontrun.aggregation_window_seconds
            ),
            decision_engine=decision_engine,
            executor=executor,
            raw_queue=raw_queue,
            live_listener=live_listener,
            poller=poller
        )

    def _on_outcome(self, outcome: ExecutionOutcome) -> None:
        status = outcome.status.value if outcome.status else "unknown"
        self._outcomes[status] = self._outcomes.get(status, 0) + 1

        if outcome.status == ExecutionStatus.SUBMITTED:
            logger.info(
                "Frontrun submitted",
                extra={
                    "order_id": outcome.order_id,
                    "account": outcome.key_account,
                    "requested_size_usd": outcome.requested_size_usd,
                    "duration_ms": outcome.duration_ms
                }
            )

    async def run(self) -> None:
        """Run the pipeline until shutdown is requested."""
        logger.info(
            "Starting Polymarket Frontrun Bot",
            extra={
                "targets": len(self.config.frontrun.target_addresses),
                "simulation_mode": self.config.risk.simulation_mode
            }
        )

        await self.pipeline.start()

        stats_task = asyncio.create_task(self._run_stats_reporter())
        try:
            await self._shutdown_event.wait()
        finally:
            stats_task.cancel()
            await asyncio.gather(stats_task, return_exceptions=True)

    async def _run_stats_reporter(self) -> None:
        """Periodically report statistics."""
        while True:
            await asyncio.sleep(60)
            self._log_stats()

    def _log_stats(self) -> None:
        """Log current statistics."""
        logger.info(
            "Bot statistics",
            extra={
                "outcomes": dict(self._outcomes),
                "pipeline": self.pipeline.get_stats() if self.pipeline else {}
            }
        )

    async def shutdown(self) -> None:
        """Gracefully shutdown the bot."""
        logger.info("Shutting down bot")

        if self.pipeline:
            await self.pipeline.stop()

        await self.data_api.close()

        self._log_stats()
        logger.info("Bot shutdown complete")

    def request_shutdown(self) -> None:
        """Request graceful shutdown."""
        self._shutdown_event.set()


def setup_signal_handlers(bot: FrontrunBot) -> None:
    """Set up signal handlers for graceful shutdown."""
    def signal_handler(sig, frame):
        logger.info(f"Received signal {sig}")
        bot.request_shutdown()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)


async def main() -> None:
    """Main entry point."""
    try:
        config = load_config()
    except ValidationError as e:
        print(f"\nConfiguration error ({e.field}): {e}")
        print("Please fix the error in your .env file and try again.\n")
        sys.exit(1)

    setup_logging(
        level=config.logging.log_level,
        json_format=config.logging.json_logging
    )

    bot = FrontrunBot(config)
    setup_signal_handlers(bot)

    try:
        await bot.initialize()
        await bot.run()
    except KeyboardInterrupt:
        logger.info("Keyboard interrupt received")
    except Exception as e:
        logger.error(f"Fatal error: {e}")
        raise
    finally:
        await bot.shutdown()


def cli() -> None:
    """Console script entry point."""
    asyncio.run(main())


if __name__ == "__main__":
    cli()
