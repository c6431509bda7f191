"""Parameter table of the timeline engine.

``DEFAULTS`` is the nested table the engine starts from; hosts push partial
payloads of the same shape through :func:`sanitize_params`. The flat option
names used by the data layer (``slotCount``, ``rippleTtlRangeMs``...) are
accepted as aliases.
"""

from __future__ import annotations

import copy
import json
import logging
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple

from ..angle_utils import clamp, coerce_float

__all__ = ["ALIASES", "DEFAULTS", "TOOLTIPS", "load_params", "sanitize_params"]

logger = logging.getLogger(__name__)

DEFAULTS = dict(
    collision=dict(
        mode="slots", slotCount=24, detectionRadiusDegrees=8.0, detectionRadiusPixels=18.0,
        minIntensity=0.1, graceWindowMs=100.0, nowRadius=200.0,
    ),
    transition=dict(initialScale="day", durationMs=1500.0, tickIntervalMs=16.0, morphPulse=True),
    ripple=dict(
        ttlMinMs=1000.0, ttlMaxMs=2500.0, neighborAttenuation=0.3,
        neighborMinIntensity=0.05, maxRipples=512,
    ),
    geometry=dict(centerX=300.0, centerY=300.0, radius=200.0, weeksInMonth=4),
    system=dict(frameIntervalMs=16),
)

TOOLTIPS = {
    "collision.mode": "Stratégie de détection : lignes angulaires ou proximité de la pointe NOW.",
    "collision.slotCount": "Nombre de lignes réparties autour du cercle à partir de l'angle NOW.",
    "collision.detectionRadiusDegrees": "Écart angulaire maximal entre une ligne et un glyphe.",
    "collision.detectionRadiusPixels": "Distance maximale entre la pointe NOW et un glyphe, en pixels.",
    "collision.minIntensity": "Intensité minimale (proximité × intensité) pour déclencher une collision.",
    "collision.graceWindowMs": "Délai avant d'oublier le dernier glyphe joué quand plus rien n'est à portée.",
    "collision.nowRadius": "Longueur de l'aiguille NOW depuis le centre.",
    "transition.initialScale": "Échelle affichée au démarrage (day, week, month, year).",
    "transition.durationMs": "Durée totale d'un changement d'échelle.",
    "transition.tickIntervalMs": "Intervalle entre deux mises à jour de la transition.",
    "transition.morphPulse": "Ajoute la respiration cosmétique pendant la transformation.",
    "ripple.ttlMinMs": "Durée de vie de l'onde la plus brève.",
    "ripple.ttlMaxMs": "Durée de vie de l'onde la plus longue.",
    "ripple.neighborAttenuation": "Facteur appliqué aux ondes secondaires des lignes voisines.",
    "ripple.neighborMinIntensity": "En dessous de cette intensité, l'onde secondaire est supprimée.",
    "ripple.maxRipples": "Nombre maximum d'ondes vivantes simultanément.",
    "geometry.centerX": "Abscisse du centre de la roue.",
    "geometry.centerY": "Ordonnée du centre de la roue.",
    "geometry.radius": "Rayon de référence des dispositions.",
    "geometry.weeksInMonth": "Nombre de semaines de la vue mois (0 : suivre le calendrier).",
    "system.frameIntervalMs": "Intervalle du minuteur d'animation (0 : arrêt).",
}

ALIASES: Dict[str, Tuple[str, str]] = {
    "slotCount": ("collision", "slotCount"),
    "detectionRadiusDegrees": ("collision", "detectionRadiusDegrees"),
    "detectionRadiusPixels": ("collision", "detectionRadiusPixels"),
    "transitionDurationMs": ("transition", "durationMs"),
    "neighborAttenuation": ("ripple", "neighborAttenuation"),
    "neighborMinIntensity": ("ripple", "neighborMinIntensity"),
}

_NUMERIC_LIMITS: Dict[str, Tuple[type, float, float]] = {
    "collision.slotCount": (int, 1, 360),
    "collision.detectionRadiusDegrees": (float, 0.0, 180.0),
    "collision.detectionRadiusPixels": (float, 0.0, 500.0),
    "collision.minIntensity": (float, 0.0, 1.0),
    "collision.graceWindowMs": (float, 0.0, 5000.0),
    "collision.nowRadius": (float, 0.0, 10000.0),
    "transition.durationMs": (float, 0.0, 60000.0),
    "transition.tickIntervalMs": (float, 1.0, 1000.0),
    "ripple.ttlMinMs": (float, 0.0, 60000.0),
    "ripple.ttlMaxMs": (float, 0.0, 60000.0),
    "ripple.neighborAttenuation": (float, 0.0, 1.0),
    "ripple.neighborMinIntensity": (float, 0.0, 1.0),
    "ripple.maxRipples": (int, 1, 100000),
    "geometry.centerX": (float, -1e6, 1e6),
    "geometry.centerY": (float, -1e6, 1e6),
    "geometry.radius": (float, 0.0, 1e6),
    "geometry.weeksInMonth": (int, 0, 6),
    "system.frameIntervalMs": (int, 0, 1000),
}

_CHOICES: Dict[str, Tuple[str, ...]] = {
    "collision.mode": ("slots", "proximity"),
    "transition.initialScale": ("day", "week", "month", "year"),
}


def _coerce(identifier: str, value: Any, fallback: Any) -> Any:
    if identifier in _CHOICES:
        text = str(value).strip().lower()
        return text if text in _CHOICES[identifier] else fallback
    if identifier in _NUMERIC_LIMITS:
        kind, low, high = _NUMERIC_LIMITS[identifier]
        number = coerce_float(value, float(fallback))
        number = clamp(number, low, high)
        return int(round(number)) if kind is int else float(number)
    if isinstance(fallback, bool):
        if isinstance(value, str):
            return value.strip().lower() in {"1", "true", "yes", "on"}
        return bool(value)
    return value


def _expand_aliases(payload: Mapping[str, Any]) -> Dict[str, Any]:
    expanded: Dict[str, Any] = {}
    for key, value in payload.items():
        if isinstance(value, Mapping):
            expanded.setdefault(key, {}).update(value)
        elif key in ALIASES:
            section, sub_key = ALIASES[key]
            expanded.setdefault(section, {})[sub_key] = value
        elif key == "rippleTtlRangeMs" and isinstance(value, (list, tuple)) and len(value) == 2:
            ripple = expanded.setdefault("ripple", {})
            ripple["ttlMinMs"], ripple["ttlMaxMs"] = value[0], value[1]
        else:
            logger.debug("[Config] ignoring unknown option %r", key)
    return expanded


def sanitize_params(
    payload: Optional[Mapping[str, Any]] = None,
    base: Optional[Mapping[str, Any]] = None,
) -> Dict[str, dict]:
    """Return ``base`` (defaults when omitted) updated with a cleaned ``payload``.

    Values are coerced and clamped; a value that cannot be interpreted keeps
    the previous one. Unknown sections and keys are ignored.
    """

    merged: Dict[str, dict] = copy.deepcopy(dict(base) if base is not None else DEFAULTS)
    if not isinstance(payload, Mapping):
        return merged
    for section, values in _expand_aliases(payload).items():
        target = merged.get(section)
        if not isinstance(target, dict) or not isinstance(values, Mapping):
            logger.debug("[Config] ignoring unknown section %r", section)
            continue
        for key, value in values.items():
            if key not in target:
                logger.debug("[Config] ignoring unknown option %s.%s", section, key)
                continue
            target[key] = _coerce(f"{section}.{key}", value, target[key])
    ripple = merged["ripple"]
    if ripple["ttlMinMs"] > ripple["ttlMaxMs"]:
        ripple["ttlMinMs"], ripple["ttlMaxMs"] = ripple["ttlMaxMs"], ripple["ttlMinMs"]
    return merged


def load_params(path: Path) -> Dict[str, dict]:
    """Read a JSON parameter file; a missing file yields the defaults."""

    path = Path(path)
    if not path.exists():
        return copy.deepcopy(DEFAULTS)
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ValueError(f"invalid parameter file {path}: {exc}") from exc
    if not isinstance(raw, dict):
        raise ValueError(f"invalid parameter file {path}: expected a JSON object")
    return sanitize_params(raw)
