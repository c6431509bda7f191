# -*- coding: utf-8 -*-
"""Command-line runner sweeping the now indicator over demo glyphs.

By default the engine runs on the Qt event loop (``QCoreApplication``, no
window); ``--headless`` drives it from a virtual clock instead so a run of
any length finishes immediately.
"""

from __future__ import annotations

import argparse
import logging
import random
import sys
from datetime import datetime, timedelta
from pathlib import Path
from typing import Dict, List, NoReturn, Optional

from .collision import CollisionEvent
from .control.config import load_params, sanitize_params
from .engine import TimelineEngine
from .scheduling import ManualScheduler

logger = logging.getLogger("nowring")

DEMO_CATEGORIES = ("mood", "sleep", "weather", "mobility", "plans")
DEMO_MOODS = ("calm", "energetic", "reflective", "peaceful", "inspired", "grounded")


def _handle_qt_import_error(exc: ImportError) -> NoReturn:
    """Exit with a helpful message when the Qt bindings cannot be imported."""

    details = str(exc)
    message_lines = [
        "Impossible de lancer nowring : l'import de PyQt5 a échoué.",
        "Vérifiez que PyQt5 est installé, ou relancez avec --headless.",
    ]
    message_lines.append(f"Erreur d'origine : {details}")
    raise SystemExit("\n".join(message_lines)) from exc


def demo_glyphs(seed: int = 7, count: int = 24) -> List[Dict[str, object]]:
    """Reproducible glyph snapshot spread around the circle."""

    rng = random.Random(seed)
    glyphs: List[Dict[str, object]] = []
    for index in range(max(0, count)):
        category = rng.choice(DEMO_CATEGORIES)
        glyph: Dict[str, object] = {
            "id": f"{category}-{index}",
            "angle": rng.uniform(-90.0, 270.0),
            "category": category,
            "intensity": round(rng.uniform(0.2, 1.0), 3),
        }
        if category == "mood":
            glyph["mood"] = rng.choice(DEMO_MOODS)
        glyphs.append(glyph)
    return glyphs


def _log_collision(event: CollisionEvent) -> None:
    logger.info(
        "collision %s (%s) slot=%d intensity=%.2f angle=%.1f",
        event.glyph_id,
        event.category,
        event.slot_index,
        event.intensity,
        event.now_angle,
    )


def parse_args(argv: List[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Sweep the now indicator over a demo glyph ring.")
    parser.add_argument(
        "--seconds",
        type=float,
        default=5.0,
        help="Duration of the run in seconds (default: 5).",
    )
    parser.add_argument(
        "--headless",
        action="store_true",
        help="Drive the engine from a virtual clock instead of the Qt event loop.",
    )
    parser.add_argument(
        "--scale",
        default=None,
        choices=("day", "week", "month", "year"),
        help="Scale to transition to once the run has started.",
    )
    parser.add_argument(
        "--speed",
        type=float,
        default=720.0,
        help="Simulated seconds per real second for the now indicator (default: 720).",
    )
    parser.add_argument("--seed", type=int, default=7, help="Seed of the demo glyphs.")
    parser.add_argument("--glyphs", type=int, default=24, help="Number of demo glyphs.")
    parser.add_argument("--config", type=Path, default=None, help="JSON parameter file.")
    parser.add_argument("--verbose", action="store_true", help="Log engine diagnostics.")
    return parser.parse_args(argv)


def _simulated_clock(origin: datetime, elapsed_ms, speed: float):
    def _now() -> datetime:
        return origin + timedelta(milliseconds=elapsed_ms() * speed)

    return _now


def run_headless(args: argparse.Namespace, params: Dict[str, dict]) -> int:
    scheduler = ManualScheduler()
    origin = datetime.now()
    engine = TimelineEngine(
        scheduler,
        params,
        clock=_simulated_clock(origin, scheduler.now_ms, args.speed),
    )
    engine.add_collision_listener(_log_collision)
    engine.set_glyphs(demo_glyphs(args.seed, args.glyphs))
    engine.start()
    if args.scale:
        engine.request_scale(args.scale)

    frame_ms = max(1, int(engine.state["system"]["frameIntervalMs"]) or 16)
    total = 0
    for _ in range(int(args.seconds * 1000.0 / frame_ms)):
        total += len(engine.tick(dt_ms=frame_ms).events)
    logger.info("%d collision(s) in %.1f simulated seconds", total, args.seconds)
    engine.dispose()
    return 0


def run_qt(args: argparse.Namespace, params: Dict[str, dict]) -> int:
    try:
        from PyQt5 import QtCore
    except ImportError as exc:  # pragma: no cover - dépendances environnementales
        _handle_qt_import_error(exc)

    from .view.host import TimelineHost

    app = QtCore.QCoreApplication.instance() or QtCore.QCoreApplication(sys.argv)
    elapsed = QtCore.QElapsedTimer()
    elapsed.start()
    host = TimelineHost(params, clock=_simulated_clock(datetime.now(), elapsed.elapsed, args.speed))
    host.collisionDetected.connect(_log_collision)
    host.set_glyphs(demo_glyphs(args.seed, args.glyphs))
    host.start()
    if args.scale:
        host.request_scale(args.scale)
    QtCore.QTimer.singleShot(int(args.seconds * 1000.0), app.quit)
    code = app.exec_()
    host.dispose()
    return code


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(sys.argv[1:] if argv is None else argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        params = load_params(args.config) if args.config else sanitize_params()
    except ValueError as exc:
        raise SystemExit(str(exc)) from exc
    if args.headless:
        return run_headless(args, params)
    return run_qt(args, params)


if __name__ == "__main__":
    raise SystemExit(main())
