import numpy as np
import pytest

from gwcycle import ChainState, GeometryContext, PriorBounds, Variables, VaryType

L, C, F = VaryType.LINEAR, VaryType.CIRCULAR, VaryType.FIXED


@pytest.fixture
def priors():
    return PriorBounds(
        {
            "chirpmass": (5.0, 40.0),
            "q": (0.1, 1.0),
            "time": (999.9, 1000.1),
            "phase": (0.0, 2.0 * np.pi),
            "polarisation": (0.0, np.pi),
            "rightascension": (0.0, 2.0 * np.pi),
            "declination": (-np.pi / 2.0, np.pi / 2.0),
            "costheta_jn": (-1.0, 1.0),
            "logdistance": (np.log(10.0), np.log(1000.0)),
            "a_spin1": (0.0, 0.99),
            "a_spin2": (0.0, 0.99),
        }
    )


@pytest.fixture
def cbc_params():
    return Variables(
        {
            "chirpmass": (20.0, L),
            "q": (0.7, L),
            "time": (1000.0, L),
            "phase": (1.0, C),
            "polarisation": (0.5, C),
            "rightascension": (2.0, C),
            "declination": (0.3, L),
            "costheta_jn": (0.2, L),
            "logdistance": (np.log(200.0), L),
            "a_spin1": (0.3, L),
            "a_spin2": (0.2, L),
            "f_ref": (20.0, F),
        }
    )


@pytest.fixture
def network():
    return GeometryContext.from_names(["H1", "L1", "V1"], 1000.0)


@pytest.fixture
def chain(priors, cbc_params, network):
    return ChainState.create(np.random.default_rng(1234), priors, cbc_params, geometry=network)
