import math

import jax.numpy as jnp
from jaxtyping import Array, Float


def next_power_of_two(n: int) -> int:
    """the smallest power of two >= n

    Args:
        n (int): a positive integer

    Returns:
        N (int): 2 ** ceil(log2(n))
    """
    return 2 ** math.ceil(math.log2(n))


def sample_count(l_max: int) -> int:
    """number of great-circle samples resolving degrees up to l_max

    Harmonics up to l_max need at least 2 * l_max + 1 samples to avoid
    aliasing; the count is rounded up to a power of two for the FFT.

    Args:
        l_max (int): the maximum degree

    Returns:
        N (int): the number of samples
    """
    return next_power_of_two(2 * l_max + 1)


def harmonic_coefficients(
    u: Float[Array, "... N"], axis: int = -1
) -> tuple[Float[Array, "... K"], Float[Array, "... K"]]:
    """cosine and sine coefficients of a real periodic signal

    The signal is analysed with a forward real FFT (no 1/N prescaling) and
    rescaled so that
        u(x_j) = C_0/2 + sum_i C_i cos(i x_j) + S_i sin(i x_j)

    Args:
        u (Array): the real samples, uniformly spaced over one period
        axis (int, optional): the axis holding the samples. Defaults to -1.

    Returns:
        C (Array): cosine coefficients 2 * Re(y_i) / N, i = 0..N/2
        S (Array): sine coefficients -2 * Im(y_i) / N, i = 0..N/2
    """
    N = u.shape[axis]
    y = jnp.fft.rfft(u, axis=axis)
    C = 2 * y.real / N
    S = -2 * y.imag / N
    return C, S
