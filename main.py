import argparse
import logging
import sys
import time
from pathlib import Path

from core.pipeline import EmgPipeline
from daq.simulated_link import SimulatedEmgLink
from shared.errors import ExportIOError
from shared.settings import PipelineConfig, load_pipeline_config


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Headless EMG stream demo on a simulated sensor.")
    parser.add_argument("--config", type=Path, help="pipeline config JSON")
    parser.add_argument("--seconds", type=float, default=3.0, help="recording length")
    parser.add_argument("--out", type=Path, help="CSV file or directory for the export")
    parser.add_argument("-v", "--verbose", action="store_true")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    config = load_pipeline_config(args.config) if args.config else PipelineConfig.default()

    with EmgPipeline(config) as pipeline:
        link = SimulatedEmgLink(
            pipeline.submit_frame,
            on_connected=pipeline.on_connected,
            on_disconnected=pipeline.on_disconnected,
            seed=0,
        )
        link.start()
        pipeline.start_recording()
        deadline = time.monotonic() + args.seconds
        while time.monotonic() < deadline:
            time.sleep(0.5)
            snap = pipeline.snapshot()
            latest = ", ".join(f"{name}={value:.4f}" for name, value in snap.latest.items())
            logging.info("seq=%d samples=%d %s", snap.seq, snap.samples, latest)
        link.stop()
        pipeline.drain(timeout=2.0)
        dataset = pipeline.stop_recording()

    if dataset is None:
        return 1
    if args.out is None:
        sys.stdout.write(pipeline.last_export_text or "")
        return 0
    try:
        pipeline.save_last_export(args.out)
    except ExportIOError as exc:
        logging.error("%s (%d rows kept in memory)", exc, exc.dataset.n_rows)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
