# ------------------------------------------------------------------------------
# FILE: helloserver/main.py
# ------------------------------------------------------------------------------
import argparse
import sys
from typing import List, Optional

import helloserver_tracing
from helloserver.allocation import AllocationState, AllocatorLoop
from helloserver.config import Config, load_config, redact_config
from helloserver.errors.fatal import ConfigError, FatalError, ServerError
from helloserver.runtime import Runtime
from helloserver.server import StatusServer
from helloserver_logging import setup_logging
from helloserver_metrics import start_metrics_http_server, stop_metrics_http_server


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="helloserver",
        description="Serve the allocation status while growing memory on a timer.",
    )
    parser.add_argument("--host", default=None, help="Listen address (env HOST)")
    parser.add_argument("--port", type=int, default=None, help="Listen port (env PORT, default 8080)")
    parser.add_argument(
        "--log-format", choices=["text", "json"], default=None, help="Log output format (env LOG_FORMAT)"
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    print("Service starting up", flush=True)
    args = build_parser().parse_args(argv)

    try:
        conf = load_config(host=args.host, port=args.port, log_format=args.log_format)
    except ConfigError as e:
        print(f"FATAL: Config Error - {e.message} | Context: {e.context}", file=sys.stderr)
        return 1

    try:
        return _serve(conf)
    finally:
        helloserver_tracing.shutdown()


def _serve(conf: Config) -> int:
    try:
        if conf.tracing_enabled:
            helloserver_tracing.init_telemetry(
                conf.service_name,
                conf.service_version,
                endpoint=conf.otlp_endpoint,
                headers=conf.otlp_header_map() or None,
                sampler=conf.otel_sampler,
                sample_rate=conf.otel_sample_rate,
            )
        logger = setup_logging(
            "helloserver",
            level=conf.effective_log_level,
            log_format=conf.log_format,
            log_dir=conf.log_dir,
        )
    except FatalError as e:
        print(f"FATAL: Telemetry Error - {e.message} | Context: {e.context}", file=sys.stderr)
        return 1
    except (ValueError, OSError) as e:
        print(f"FATAL: Logging Error - {e}", file=sys.stderr)
        return 1

    logger.info("Effective configuration", extra=redact_config(conf.model_dump()))

    runtime = Runtime()

    def _fatal(exc: BaseException) -> None:
        runtime.request_stop(f"fatal: {exc!r}", exit_code=1)

    allocation = AllocationState(conf.target_count, conf.chunk_size_bytes)
    loop = AllocatorLoop(allocation, conf.interval_secs, on_fatal=_fatal)
    server = StatusServer(allocation, conf, on_fatal=_fatal)

    if conf.metrics_enabled:
        start_metrics_http_server(conf.metrics_port)

    try:
        loop.start()
        try:
            server.start_in_thread()
        except ServerError as e:
            logger.critical("Startup failed: %s", e.message, extra=e.context)
            runtime.request_stop("startup failed", exit_code=1)
        else:
            port = server.address[1]
            logger.info("** Service Started on Port %s **", port)
            print(f"** Service Started on Port {port} **", flush=True)

        while runtime.should_continue():
            runtime.wait(1.0)
    finally:
        loop.stop()
        server.stop()
        stop_metrics_http_server()
        logger.info("Service shutting down", extra={"reason": runtime.stop_reason})
        runtime.shutdown()

    return runtime.exit_code
