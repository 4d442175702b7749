import logging

import numpy as np
import pytest

from gwcycle import (
    ExtrinsicParamProposal,
    GeometryContext,
    ProposalError,
    SkyReflectDetPlane,
    SkyRingProposal,
    antenna_response,
    builtin_detector,
    gmst,
    num_unique_positions,
    reflected_extrinsic_parameters,
    reflected_position_and_time,
    rotate_about_axis,
    time_delay_from_earth_center,
)


def _arrival(det, params):
    t = params.get_scalar("time")
    ra = params.get_scalar("rightascension")
    dec = params.get_scalar("declination")
    return t + time_delay_from_earth_center(det.location, ra, dec, t)


def _network_power(geom, params):
    t = params.get_scalar("time")
    g = gmst(t)
    ra = params.get_scalar("rightascension")
    dec = params.get_scalar("declination")
    psi = params.get_scalar("polarisation")
    d = np.exp(params.get_scalar("logdistance"))
    total = 0.0
    for det in geom.detectors:
        fp, fc = antenna_response(det.response, ra, dec, psi, g)
        total += fp * fp + fc * fc
    return total / d**2


def test_unique_positions():
    h1 = builtin_detector("H1")
    assert num_unique_positions([h1, builtin_detector("L1"), h1]) == 2
    with pytest.raises(ProposalError):
        builtin_detector("X9")


def test_rotation_preserves_axis_component():
    n = np.array([0.0, 0.0, 1.0])
    k = np.array([1.0, 0.0, 0.5])
    kp = rotate_about_axis(k, n, np.pi / 2.0)
    np.testing.assert_allclose(kp, [0.0, 1.0, 0.5], atol=1e-12)


def test_reflection_is_an_involution(network):
    ra, dec, t = 2.0, 0.3, 1000.0
    r1 = reflected_position_and_time(network, ra, dec, t)
    r2 = reflected_position_and_time(network, *r1)
    d_ra = np.mod(r2[0] - ra + np.pi, 2.0 * np.pi) - np.pi
    assert abs(d_ra) < 1e-9
    assert r2[1] == pytest.approx(dec, abs=1e-9)
    assert r2[2] == pytest.approx(t, abs=1e-9)


def test_reflection_needs_three_sites(chain, cbc_params, caplog):
    chain.geometry = GeometryContext.from_names(["H1", "L1"], 1000.0)
    kernel = SkyReflectDetPlane()
    with caplog.at_level(logging.WARNING, logger="gwcycle"):
        assert kernel(chain, cbc_params)[0] is None
        assert kernel(chain, cbc_params)[0] is None
    assert kernel.warning_delivered
    assert len([r for r in caplog.records if r.name == "gwcycle"]) == 1

    # a fresh instance warns again
    other = SkyReflectDetPlane()
    assert not other.warning_delivered


def test_reflection_proposal(chain, cbc_params):
    proposed, ratio = SkyReflectDetPlane()(chain, cbc_params)
    assert np.isfinite(ratio)
    assert proposed.get_scalar("declination") != cbc_params.get_scalar("declination")
    assert proposed.get_scalar("chirpmass") == cbc_params.get_scalar("chirpmass")


def test_sky_ring_holds_arrival_times(chain, cbc_params):
    geom = GeometryContext.from_names(["H1", "L1"], 1000.0)
    chain.geometry = geom
    kernel = SkyRingProposal()
    for _ in range(10):
        proposed, ratio = kernel(chain, cbc_params)
        for det in geom.detectors:
            assert _arrival(det, proposed) == pytest.approx(_arrival(det, cbc_params), abs=1e-6)
        dec, new_dec = cbc_params.get_scalar("declination"), proposed.get_scalar("declination")
        assert ratio == pytest.approx(np.log(np.cos(dec) / np.cos(new_dec)))


def test_sky_ring_conserves_network_power(chain, cbc_params, network):
    kernel = SkyRingProposal()
    before = _network_power(network, cbc_params)
    for _ in range(10):
        proposed, _ = kernel(chain, cbc_params)
        assert _network_power(network, proposed) == pytest.approx(before, rel=1e-9)
        assert 0.0 <= proposed.get_scalar("polarisation") < np.pi


def test_sky_ring_single_site(chain, cbc_params):
    chain.geometry = GeometryContext.from_names(["H1"], 1000.0)
    assert SkyRingProposal()(chain, cbc_params)[0] is None


def test_extrinsic_param_proposal(chain, cbc_params):
    proposed, ratio = ExtrinsicParamProposal()(chain, cbc_params)
    assert proposed is not None
    assert not np.isnan(ratio)
    for name in ("rightascension", "declination", "time", "logdistance", "costheta_jn", "polarisation"):
        assert np.isfinite(proposed.get_scalar(name))
    assert -1.0 <= proposed.get_scalar("costheta_jn") <= 1.0


def _site_amplitudes(geom, ra, dec, t, dist, iota, psi):
    g = gmst(t)
    c2 = np.cos(iota) ** 2
    out = []
    for det in geom.unique()[:3]:
        fp, fc = antenna_response(det.response, ra, dec, psi, g)
        out.append((1.0 + c2) ** 2 / (4.0 * dist**2) * fp * fp + c2 / dist**2 * fc * fc)
    return np.array(out)


def test_reflected_extrinsic_keeps_site_amplitudes(network, cbc_params):
    old = (
        cbc_params.get_scalar("rightascension"),
        cbc_params.get_scalar("declination"),
        cbc_params.get_scalar("time"),
        np.exp(cbc_params.get_scalar("logdistance")),
        np.arccos(cbc_params.get_scalar("costheta_jn")),
        cbc_params.get_scalar("polarisation"),
    )
    new = reflected_extrinsic_parameters(network, *old)
    np.testing.assert_allclose(
        _site_amplitudes(network, *new), _site_amplitudes(network, *old), rtol=1e-8
    )


def test_extrinsic_param_needs_three_sites(chain, cbc_params):
    chain.geometry = GeometryContext.from_names(["H1", "L1"], 1000.0)
    kernel = ExtrinsicParamProposal()
    assert kernel(chain, cbc_params)[0] is None
    assert kernel.warning_delivered


def test_sky_kernels_need_geometry(chain, cbc_params):
    chain.geometry = None
    for kernel in (SkyReflectDetPlane(), ExtrinsicParamProposal(), SkyRingProposal()):
        with pytest.raises(ProposalError):
            kernel(chain, cbc_params)
