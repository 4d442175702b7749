"""GWCYCLE jump proposals for gravitational-wave MCMC."""

from . import jax_config  # noqa: F401  must run before any jax use

from .errors import *
from .states import *
from .priors import *
from .buffer import *
from .config import *
from .adaptation import *
from .geometry import *
from .proposal import *
from .chain import *
from .mh_moves import *
from .gw_moves import *
from .sky_moves import *
from .birth_death import *
from .kde import *
from .cycle import *

__all__ = [name for name in globals() if not name.startswith("_")]
