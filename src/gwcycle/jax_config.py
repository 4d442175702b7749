"""
JAX configuration - imported by the package before any other jax use.

The glitch model keeps a running frequency-domain sum that is updated by
adding and subtracting wavelet templates; that only stays equal to the
literal sum in double precision.
"""
import jax

jax.config.update("jax_enable_x64", True)
