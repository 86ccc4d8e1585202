"""
HTTP server wiring: queue, executor and worker behind the FastAPI app.
"""
from dataclasses import dataclass
from typing import Optional

from fastapi import FastAPI

from . import __version__
from .api import router as jobs_router
from .config import RunnerConfig
from .executor import JobExecutor
from .logging_config import get_logger
from .queue import JobProducer, create_queue
from .queue.base import JobQueue
from .worker import Worker

logger = get_logger("pwrunner.server")


@dataclass
class Runtime:
    """Everything one runner process owns."""
    config: RunnerConfig
    queue: JobQueue
    executor: JobExecutor
    worker: Worker
    producer: JobProducer

    @classmethod
    def from_config(cls, config: Optional[RunnerConfig] = None) -> "Runtime":
        config = config or RunnerConfig.from_env()
        queue = create_queue(config.queue)
        executor = JobExecutor.from_config(config)
        worker = Worker(
            queue,
            executor,
            concurrency=config.worker.concurrency,
            shutdown_timeout=config.worker.shutdown_timeout,
        )
        return cls(
            config=config,
            queue=queue,
            executor=executor,
            worker=worker,
            producer=JobProducer(queue),
        )


def create_app(runtime: Optional[Runtime] = None, start_worker: bool = True) -> FastAPI:
    runtime = runtime or Runtime.from_config()

    app = FastAPI(title="pwrunner", version=__version__)
    app.state.runtime = runtime
    app.include_router(jobs_router)

    @app.on_event("startup")
    async def startup_event():
        if start_worker:
            await runtime.worker.start()
            logger.info("Worker started")

    @app.on_event("shutdown")
    async def shutdown_event():
        """Graceful shutdown"""
        cancelled = await runtime.worker.stop()
        if cancelled:
            logger.error(f"{cancelled} job(s) cancelled at shutdown")
        logger.info("Worker stopped")
        await runtime.queue.close()
        logger.info("Queue connection closed")

    return app


def run_server(host: str = "127.0.0.1", port: int = 8430, config: Optional[RunnerConfig] = None):
    """Run the HTTP server with an embedded worker."""
    import uvicorn

    app = create_app(Runtime.from_config(config))
    # SIGINT/SIGTERM reach the worker through the shutdown event
    uvicorn.run(app, host=host, port=port)
