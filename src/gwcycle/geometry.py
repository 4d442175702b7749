"""Detector-network geometry shared by the sky proposals."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Sequence, Tuple

import numpy as np

from .errors import ProposalError

C_SI = 299792458.0
TWO_PI = 2.0 * np.pi

# WGS-84 ellipsoid
_EARTH_A = 6378137.0
_EARTH_F = 1.0 / 298.257223563

# GPS epoch (1980-01-06T00:00:00 UTC) as a Julian date, and GPS-UTC offset.
_GPS_EPOCH_JD = 2444244.5
_GPS_UTC_OFFSET = 18.0


# ---- 3-vector helpers ----
def cross(y: np.ndarray, z: np.ndarray) -> np.ndarray:
    return np.cross(y, z)


def norm(x: np.ndarray) -> float:
    return float(np.sqrt(np.dot(x, x)))


def unit_vector(w: np.ndarray) -> np.ndarray:
    n = norm(w)
    if n == 0.0:
        raise ProposalError("unit_vector: cannot normalise a zero-length vector")
    return np.asarray(w, dtype=float) / n


def project_along(v: np.ndarray, w: np.ndarray) -> np.ndarray:
    """Component of ``v`` along ``w``."""

    what = unit_vector(w)
    return what * np.dot(v, what)


def reflect_plane(p: np.ndarray, x: np.ndarray, y: np.ndarray, z: np.ndarray) -> np.ndarray:
    """Mirror ``p`` through the plane through the origin parallel to (x, y, z)."""

    nhat = unit_vector(cross(y - x, z - x))
    pn = project_along(p, nhat)
    return (p - pn) - pn


def sph_to_cart(lat: float, lon: float) -> np.ndarray:
    return np.array([np.cos(lon) * np.cos(lat), np.sin(lon) * np.cos(lat), np.sin(lat)])


def cart_to_sph(cart: np.ndarray) -> Tuple[float, float]:
    """Return (lat, lon) of a Cartesian vector."""

    lon = float(np.arctan2(cart[1], cart[0]))
    lat = float(np.arcsin(cart[2] / norm(cart)))
    return lat, lon


# ---- time ----
def gmst(gps_time: float) -> float:
    """Greenwich mean sidereal time (rad, in [0, 2pi)) at a GPS time.

    Earth-rotation-angle approximation with UT1 ~ UTC and a fixed leap
    second count; good to well below the sky resolution of a network.
    """

    jd = _GPS_EPOCH_JD + (gps_time - _GPS_UTC_OFFSET) / 86400.0
    turns = 0.7790572732640 + 1.00273781191135448 * (jd - 2451545.0)
    return float(TWO_PI * np.mod(turns, 1.0))


def line_of_sight(ra: float, dec: float, gmst_rad: float) -> np.ndarray:
    """Earth-fixed unit vector pointing at the source."""

    gha = gmst_rad - ra
    return np.array([np.cos(gha) * np.cos(dec), -np.sin(gha) * np.cos(dec), np.sin(dec)])


def time_delay_from_earth_center(location: np.ndarray, ra: float, dec: float, gps_time: float) -> float:
    """Arrival time at ``location`` minus arrival time at the geocentre (s)."""

    return float(-np.dot(location, line_of_sight(ra, dec, gmst(gps_time))) / C_SI)


# ---- detectors ----
@dataclass
class Detector:
    name: str
    location: np.ndarray  # (3,) Earth-fixed, metres
    response: np.ndarray  # (3, 3) symmetric, traceless

    def same_location(self, other: "Detector") -> bool:
        return bool(np.array_equal(self.location, other.location))

    @staticmethod
    def from_site(
        name: str,
        lat: float,
        lon: float,
        elevation: float,
        x_azimuth: float,
        y_azimuth: float,
        x_altitude: float = 0.0,
        y_altitude: float = 0.0,
    ) -> "Detector":
        """Build a detector from geodetic site data (azimuths east of north)."""

        e2 = _EARTH_F * (2.0 - _EARTH_F)
        slat, clat = np.sin(lat), np.cos(lat)
        slon, clon = np.sin(lon), np.cos(lon)
        n = _EARTH_A / np.sqrt(1.0 - e2 * slat * slat)
        location = np.array(
            [
                (n + elevation) * clat * clon,
                (n + elevation) * clat * slon,
                (n * (1.0 - e2) + elevation) * slat,
            ]
        )

        east = np.array([-slon, clon, 0.0])
        north = np.array([-slat * clon, -slat * slon, clat])
        up = np.array([clat * clon, clat * slon, slat])

        def arm(az, alt):
            return np.cos(alt) * np.sin(az) * east + np.cos(alt) * np.cos(az) * north + np.sin(alt) * up

        x = arm(x_azimuth, x_altitude)
        y = arm(y_azimuth, y_altitude)
        response = 0.5 * (np.outer(x, x) - np.outer(y, y))
        return Detector(name=name, location=location, response=response)


def _builtin(name: str) -> Detector:
    sites = {
        "H1": (0.81079526383, -2.08405676917, 142.554, 5.65487724844, 4.08408092164, -6.195e-4, 1.25e-5),
        "L1": (0.53342313506, -1.58430937078, -6.574, 4.40317772346, 2.83238139666, -3.121e-4, -6.107e-4),
        "V1": (0.76151183984, 0.18333805213, 51.884, 0.33916285222, 5.05155183261, 0.0, 0.0),
    }
    try:
        return Detector.from_site(name, *sites[name])
    except KeyError:
        raise ProposalError(f"unknown detector '{name}'") from None


def builtin_detector(name: str) -> Detector:
    """H1, L1 or V1."""

    return _builtin(name)


def antenna_response(response: np.ndarray, ra: float, dec: float, psi: float, gmst_rad: float) -> Tuple[float, float]:
    """(F+, Fx) of a detector tensor for a source at (ra, dec, psi)."""

    gha = gmst_rad - ra
    cgha, sgha = np.cos(gha), np.sin(gha)
    cdec, sdec = np.cos(dec), np.sin(dec)
    cpsi, spsi = np.cos(psi), np.sin(psi)

    X = np.array(
        [
            -cpsi * sgha - spsi * cgha * sdec,
            -cpsi * cgha + spsi * sgha * sdec,
            spsi * cdec,
        ]
    )
    Y = np.array(
        [
            spsi * sgha - cpsi * cgha * sdec,
            spsi * cgha + cpsi * sgha * sdec,
            cpsi * cdec,
        ]
    )
    DX = response @ X
    DY = response @ Y
    fplus = float(X @ DX - Y @ DY)
    fcross = float(X @ DY + Y @ DX)
    return fplus, fcross


def unique_detectors(detectors: Sequence[Detector]) -> List[Detector]:
    """First detector at each distinct location, in network order."""

    out: List[Detector] = []
    for det in detectors:
        if not any(det.same_location(o) for o in out):
            out.append(det)
    return out


def num_unique_positions(detectors: Sequence[Detector]) -> int:
    return len(unique_detectors(detectors))


@dataclass
class GeometryContext:
    """Detector network plus the data epoch (GPS seconds)."""

    detectors: List[Detector] = field(default_factory=list)
    epoch: float = 0.0

    @staticmethod
    def from_names(names: Sequence[str], epoch: float) -> "GeometryContext":
        return GeometryContext(detectors=[builtin_detector(n) for n in names], epoch=float(epoch))

    @property
    def n_unique(self) -> int:
        return num_unique_positions(self.detectors)

    def unique(self) -> List[Detector]:
        return unique_detectors(self.detectors)


def reflected_position_and_time(
    geom: GeometryContext, ra: float, dec: float, time: float
) -> Tuple[float, float, float]:
    """Mirror the source through the plane of the three detector sites.

    The arrival time at the first detector of the network is held fixed.
    Equatorial/Earth-fixed conversion uses the data epoch, so applying
    the map twice returns the input.
    """

    sites = geom.unique()
    if len(sites) < 3:
        raise ProposalError(
            f"plane reflection needs three distinct detector sites, got {len(sites)}"
        )
    g = gmst(geom.epoch)
    x, y, z = (d.location for d in sites[:3])

    current = sph_to_cart(dec, ra - g)
    new_dec, new_lon = cart_to_sph(reflect_plane(current, x, y, z))
    new_ra = float(np.mod(new_lon + g, TWO_PI))

    ref = geom.detectors[0].location
    old_dt = time_delay_from_earth_center(ref, ra, dec, geom.epoch)
    new_dt = time_delay_from_earth_center(ref, new_ra, new_dec, geom.epoch)
    return new_ra, new_dec, time + old_dt - new_dt


__all__ = [name for name in globals() if not name.startswith("_")]
