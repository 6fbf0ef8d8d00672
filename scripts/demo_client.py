#!/usr/bin/env python3
"""
Headless demo of the inference router.

Connects to the ML server, subscribes to every model type and, once per
tick, issues the four inference calls with synthetic vehicle data, logging
each result. Failed calls are logged and the loop carries on.

Usage:
    python scripts/demo_client.py [--url ws://localhost:8080/ws] [--iterations 10] [--interval 1.0]
"""

import argparse
import asyncio
import logging
import math
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from config import Config  # noqa: E402  (loads .env)
from infra import InfraBootstrap, InfraConfig  # noqa: E402
from router import ConnectError, InferenceClient, ModelType, RouterError  # noqa: E402

logger = logging.getLogger("demo_client")

HISTORY_LENGTH = 10


@dataclass
class DemoStats:
    """Outcome counts for one demo run."""

    ticks: int = 0
    succeeded: Dict[str, int] = field(default_factory=dict)
    failed: Dict[str, int] = field(default_factory=dict)
    observed: Dict[str, int] = field(default_factory=dict)

    def record(self, bucket: Dict[str, int], model_type: ModelType) -> None:
        bucket[model_type.value] = bucket.get(model_type.value, 0) + 1


def vehicle_history(tick: int, length: int = HISTORY_LENGTH) -> List[Dict[str, float]]:
    """Positions of a vehicle weaving along the x axis, 100 ms apart."""
    start = max(0, tick - length + 1)
    return [
        {"x": float(t), "y": 2.0 * math.sin(t / 3.0), "timestamp": t * 100}
        for t in range(start, tick + 1)
    ]


def sensor_readings(tick: int) -> List[Dict]:
    spike = 4.0 if tick % 7 == 6 else 0.0
    return [
        {"sensor_type": "lidar", "values": [10.0, 10.2, 9.9 + spike, 10.1], "timestamp": tick * 100},
        {"sensor_type": "camera", "values": [0.8, 0.82, 0.79, 0.81], "timestamp": tick * 100},
        {"sensor_type": "radar", "values": [5.0, 5.1, 4.9, 5.0 + spike], "timestamp": tick * 100},
    ]


def sensor_activity(tick: int) -> Dict[str, bool]:
    return {"lidar": True, "camera": True, "radar": tick % 5 != 4}


async def run_tick(client: InferenceClient, tick: int, stats: DemoStats) -> None:
    calls = {
        ModelType.TRAJECTORY_PREDICTION: client.predict_trajectory(vehicle_history(tick), horizon=10),
        ModelType.ANOMALY_DETECTION: client.detect_anomaly(sensor_readings(tick)),
        ModelType.OBJECT_DETECTION: client.detect_objects(f"frame_{tick:05d}", simulate_complex=tick % 3 == 0),
        ModelType.SENSOR_FUSION: client.fuse_sensors(sensor_activity(tick)),
    }
    results = await asyncio.gather(*calls.values(), return_exceptions=True)

    for model_type, result in zip(calls, results):
        if isinstance(result, RouterError):
            stats.record(stats.failed, model_type)
            logger.warning("tick=%d %s failed: %s", tick, model_type.value, result)
        elif isinstance(result, BaseException):
            raise result
        else:
            stats.record(stats.succeeded, model_type)
            logger.info("tick=%d %s -> %s", tick, model_type.value, summarize(model_type, result))


def summarize(model_type: ModelType, prediction: Dict) -> str:
    if model_type is ModelType.TRAJECTORY_PREDICTION:
        points = prediction.get("predictions", [])
        tail = points[-1] if points else {}
        return f"{len(points)} points, last=({tail.get('x')}, {tail.get('y')}), confidence={prediction.get('confidence')}"
    if model_type is ModelType.ANOMALY_DETECTION:
        return f"score={prediction.get('anomaly_score', 0):.3f} anomaly={prediction.get('is_anomaly')}"
    if model_type is ModelType.OBJECT_DETECTION:
        classes = [obj.get("class_name") for obj in prediction.get("objects", [])]
        return f"{len(classes)} objects {classes}"
    return f"confidence={prediction.get('overall_confidence', 0):.2f} quality={prediction.get('fusion_quality')}"


async def run_demo(infra: InfraBootstrap, iterations: int, interval_s: float) -> DemoStats:
    """Drive the client for ``iterations`` ticks, ``interval_s`` apart."""
    stats = DemoStats()
    client = await infra.start()

    unsubscribers = [
        client.subscribe(model_type, lambda response, mt=model_type: stats.record(stats.observed, mt))
        for model_type in ModelType
    ]
    try:
        for tick in range(iterations):
            await run_tick(client, tick, stats)
            stats.ticks += 1
            if tick + 1 < iterations:
                await asyncio.sleep(interval_s)
    finally:
        for unsubscribe in unsubscribers:
            unsubscribe()
        await infra.shutdown()

    return stats


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Headless inference router demo")
    parser.add_argument("--url", default=None, help="ML server WebSocket URL (default: ML_SERVER_URL or ws://localhost:8080/ws)")
    parser.add_argument("--iterations", type=int, default=10, help="Number of ticks (default: 10)")
    parser.add_argument("--interval", type=float, default=1.0, help="Seconds between ticks (default: 1.0)")
    parser.add_argument("--log-level", default=Config.LOG_LEVEL, help="Logging level (default: LOG_LEVEL or INFO)")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    config = InfraConfig.from_env()
    if args.url:
        config.ml_server_url = args.url

    try:
        stats = asyncio.run(run_demo(InfraBootstrap(config), args.iterations, args.interval))
    except ConnectError as e:
        logger.error("✗ %s", e)
        return 1

    logger.info(
        "✓ %d ticks: succeeded=%s failed=%s observed=%s",
        stats.ticks,
        stats.succeeded,
        stats.failed,
        stats.observed,
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
