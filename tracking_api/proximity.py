# path: tracking_api/proximity.py
"""Proximity positioning from beacon RSSI readings.

- keeps the best (strongest) RSSI per beacon
- converts RSSI to distance via a log-distance model:
    d = 10 ** ((TX_POWER_DBM_AT_1M - rssi) / (10 * PATH_LOSS_EXPONENT))
- with two or more beacons: inverse-distance-squared weighted centroid over
  the TOP_K strongest beacons -> method="proximity"
- falls back to the nearest beacon if the weights degenerate
  -> method="fallback_nearest"
- with a single beacon: its position -> method="single_anchor"
- quality score q_score in [0, 1] from the number of beacons (up to TOP_K)
  and the RSSI spread between strongest and weakest beacon
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, Optional

from .schemas import BeaconReading, Location


@dataclass
class PositionEstimate:
    location: Location
    method: str
    q_score: float
    nearest: str
    dists: Dict[str, float] = field(default_factory=dict)


def rssi_to_distance(rssi: float, tx_power: float, n: float) -> float:
    return 10 ** ((tx_power - rssi) / (10.0 * n))


def estimate_position(
    readings: Iterable[BeaconReading],
    beacons: Dict[str, Location],
    tx_power_ref: float,
    path_loss_exponent: float,
    k: int,
    clamp_m: float = 0.5,
) -> Optional[PositionEstimate]:
    """Estimate a location from readings of beacons with known positions.

    Readings of beacons missing from `beacons` are ignored. Returns None when
    no reading refers to a known beacon.
    """
    best: Dict[str, float] = {}
    for r in readings:
        if r.id_beacon not in beacons:
            continue
        if r.id_beacon not in best or r.rssi > best[r.id_beacon]:
            best[r.id_beacon] = r.rssi
    if not best:
        return None

    dists = {
        bid: float(rssi_to_distance(rssi, tx_power_ref, path_loss_exponent))
        for bid, rssi in best.items()
    }
    ranked = sorted(best.items(), key=lambda kv: kv[1], reverse=True)
    nearest = ranked[0][0]

    if len(ranked) >= 2:
        wsumx = wsumy = wsumz = wtot = 0.0
        for bid, _ in ranked[:k]:
            pos = beacons[bid]
            d = max(dists[bid], clamp_m)
            w = 1.0 / (d * d)
            wsumx += w * pos.x
            wsumy += w * pos.y
            wsumz += w * pos.z
            wtot += w
        if wtot > 0:
            location = Location(x=wsumx / wtot, y=wsumy / wtot, z=wsumz / wtot)
            method = "proximity"
        else:
            location = beacons[nearest].model_copy()
            method = "fallback_nearest"
    else:
        location = beacons[nearest].model_copy()
        method = "single_anchor"

    rssi_vals = list(best.values())
    spread = max(rssi_vals) - min(rssi_vals)
    num = len(rssi_vals)
    anchor_factor = min(1.0, (num - 1) / max(1, k - 1)) if num > 1 else 0.0
    q_score = max(0.0, min(1.0, 0.6 * anchor_factor + 0.4 * (1.0 - min(1.0, abs(spread) / 40.0))))

    return PositionEstimate(
        location=location, method=method, q_score=q_score, nearest=nearest, dists=dists
    )
