"""
Scheduler-facing batch jobs.

Each job takes the raw invocation payload and returns a JobResponse envelope:
200 with {results, count, stats}, 400 for bad invocation input, 500 with the
exception message for anything systemic. Per-ticker problems never reach this
level; the pipelines turn them into Skip records.
"""
from dataclasses import asdict
from datetime import date, datetime, timezone
from typing import Any, Dict, Optional
from zoneinfo import ZoneInfo

import structlog
from pydantic import ValidationError

from screener.config import Settings, get_settings
from screener.schemas.config import (
    Method1Config, Method2Config, ScannerConfig, merge_config, method1_overrides, method2_overrides,
)
from screener.schemas.jobs import AnalyzerEvent, JobEvent, JobResponse
from screener.services.analyzer import StockAnalyzer
from screener.services.combiner import ResultsCombiner
from screener.services.market_data import MarketDataProvider
from screener.services.method1 import Method1Pipeline
from screener.services.method2 import Method2Pipeline
from screener.services.pipeline import PipelineOutcome
from screener.services.scanner import MarketScanner
from screener.services.store import COMBINER_JOB, METHOD1_JOB, METHOD2_JOB, ScreeningStore

logger = structlog.get_logger()

SCANNER_JOB = "market-scanner"
ANALYZER_JOB = "stock-analyzer"


class ConfigurationError(Exception):
    """Invocation is missing or carries invalid parameters."""


class JobRunner:
    def __init__(self, provider: MarketDataProvider, store: ScreeningStore, settings: Optional[Settings] = None):
        self.provider = provider
        self.store = store
        self.settings = settings or get_settings()
        self.handlers = {
            SCANNER_JOB: self.market_scanner,
            METHOD1_JOB: self.method1_screener,
            METHOD2_JOB: self.method2_screener,
            COMBINER_JOB: self.results_combiner,
            ANALYZER_JOB: self.stock_analyzer,
        }

    async def run(self, job: str, payload: Optional[Dict[str, Any]] = None) -> JobResponse:
        log = logger.bind(job=job)
        handler = self.handlers.get(job)
        try:
            if handler is None:
                raise ConfigurationError(f"Unknown job {job}")
            return await handler(payload or {})
        except (ConfigurationError, ValidationError) as e:
            log.warning("Job rejected", error=str(e))
            return JobResponse.bad_request(str(e))
        except Exception as e:
            log.exception("Job failed")
            return JobResponse.failure(str(e) or e.__class__.__name__)

    def market_now(self) -> datetime:
        return datetime.now(ZoneInfo(self.settings.MARKET_TIMEZONE))

    def screen_date_for(self, event: JobEvent) -> date:
        return event.screen_date or self.market_now().date()

    async def _publish(self, job: str, screen_date: date, run_pipeline, to_rows):
        """Run inside a fresh generation; mark it FAILED and re-raise on any error."""
        run_id = await self.store.begin_run(job, screen_date)
        log = logger.bind(job=job, run_id=run_id, screen_date=screen_date.isoformat())
        log.info("Job started")
        try:
            outcome = await run_pipeline()
            rows, stats = to_rows(outcome)
            created = await self.store.publish_run(run_id, rows, stats)
        except Exception as e:
            await self.store.fail_run(run_id, str(e) or e.__class__.__name__)
            raise
        log.info("Job finished", persisted=len(created), stats=stats)
        return run_id, outcome, created, stats

    @staticmethod
    def _log_skips(job: str, outcome: PipelineOutcome):
        for stage in outcome.stages:
            for s in stage.skipped:
                logger.debug("Ticker skipped", job=job, stage=s.stage, ticker=s.ticker,
                             reason=s.reason.value, detail=s.detail)

    async def method1_screener(self, payload: Dict[str, Any]) -> JobResponse:
        event = JobEvent.model_validate(payload)
        params = await self.store.load_parameters()
        config = merge_config(Method1Config, method1_overrides(params), event.config)
        screen_date = self.screen_date_for(event)
        screen_time = self.market_now().strftime("%H:%M:%S")

        pipeline = Method1Pipeline(
            self.provider, config, screen_date,
            benchmark=self.settings.PRIMARY_BENCHMARK,
            request_delay=self.settings.REQUEST_DELAY_SECONDS,
        )

        def to_rows(outcome: PipelineOutcome):
            rows = [dict(asdict(c), screen_time=screen_time) for c in outcome.final]
            return rows, outcome.stats()

        run_id, outcome, created, stats = await self._publish(METHOD1_JOB, screen_date, pipeline.run, to_rows)
        self._log_skips(METHOD1_JOB, outcome)

        body = {
            "results": [asdict(c) for c in outcome.final],
            "count": len(created),
            "screen_date": screen_date.isoformat(),
            "screen_time": screen_time,
            "run_id": run_id,
            "stats": stats,
        }
        if outcome.message:
            body["message"] = outcome.message
        return JobResponse.ok(**body)

    async def method2_screener(self, payload: Dict[str, Any]) -> JobResponse:
        event = JobEvent.model_validate(payload)
        params = await self.store.load_parameters()
        config = merge_config(Method2Config, method2_overrides(params), event.config)
        screen_date = self.screen_date_for(event)

        pipeline = Method2Pipeline(
            self.provider, config, screen_date,
            primary_benchmark=self.settings.PRIMARY_BENCHMARK,
            secondary_benchmark=self.settings.SECONDARY_BENCHMARK,
            volatility_index=self.settings.VOLATILITY_INDEX,
            request_delay=self.settings.REQUEST_DELAY_SECONDS,
        )

        def to_rows(outcome: PipelineOutcome):
            # Every ticker that reached Gate 4 is kept, admitted or not
            return [asdict(c) for c in outcome.final], outcome.stats()

        run_id, outcome, created, stats = await self._publish(METHOD2_JOB, screen_date, pipeline.run, to_rows)
        self._log_skips(METHOD2_JOB, outcome)

        body = {
            "results": [asdict(c) for c in outcome.final if c.passed_all_gates],
            "count": len(created),
            "screen_date": screen_date.isoformat(),
            "run_id": run_id,
            "stats": stats,
        }
        if outcome.message:
            body["message"] = outcome.message
        return JobResponse.ok(**body)

    async def results_combiner(self, payload: Dict[str, Any]) -> JobResponse:
        event = JobEvent.model_validate(payload)
        screen_date = self.screen_date_for(event)
        screen_time = self.market_now().strftime("%H:%M:%S")
        combiner = ResultsCombiner()

        async def merge():
            method1_rows = await self.store.visible_rows(METHOD1_JOB, screen_date, passed_method1=True)
            method2_rows = await self.store.visible_rows(METHOD2_JOB, screen_date, passed_all_gates=True)
            return combiner.merge(method1_rows, method2_rows)

        def to_rows(merged):
            rows = [dict(r, screen_time=screen_time) for r in merged]
            return rows, combiner.membership_stats(merged)

        run_id, merged, created, stats = await self._publish(COMBINER_JOB, screen_date, merge, to_rows)

        return JobResponse.ok(
            results=sorted(merged, key=lambda r: r["priority_score"], reverse=True),
            count=len(created),
            screen_date=screen_date.isoformat(),
            screen_time=screen_time,
            run_id=run_id,
            stats=stats,
        )

    async def market_scanner(self, payload: Dict[str, Any]) -> JobResponse:
        event = JobEvent.model_validate(payload)
        config = merge_config(ScannerConfig, override=event.config)
        results = await MarketScanner(self.provider, config).scan()
        logger.info("Market scan finished", job=SCANNER_JOB, count=len(results))
        return JobResponse.ok(
            results=results,
            count=len(results),
            config=config.model_dump(),
            timestamp=datetime.now(timezone.utc).isoformat(),
        )

    async def stock_analyzer(self, payload: Dict[str, Any]) -> JobResponse:
        event = AnalyzerEvent.model_validate(payload)
        if not event.tickers:
            raise ConfigurationError("No tickers provided")
        analyzer = StockAnalyzer(self.provider, request_delay=self.settings.REQUEST_DELAY_SECONDS)
        results = await analyzer.analyze_many(event.tickers)
        return JobResponse.ok(
            results=results,
            count=len(results),
            analyzed_at=datetime.now(timezone.utc).isoformat(),
        )
