"""
Count-data families and link functions for the mixed-model engine.

Each Family defines, for a response y and linear predictor η on the log
scale:
- log f(y | η, extra): the elementwise log probability mass
- d/dη and d²/dη² of that log mass (for the conditional-mode Newton step)
- the variance function V(μ) used in reporting
- the names, starting values and bounds of its extra parameters
  (the dispersion, held on the log scale)

All methods broadcast: y of shape (n, 1) against η of shape (n, K) gives
(n, K) results, which the quadrature code relies on.

ZeroInflated wraps any Family with a single-intercept structural-zero
component, adding one extra parameter ψ = logit(π).

Parameterisations follow glmmTMB:
    nbinom1: Var(y) = μ (1 + φ)        size k = μ / φ
    nbinom2: Var(y) = μ (1 + μ / θ)    size θ

References:
    Brooks, M. E., et al. (2017). glmmTMB balances speed and flexibility
    among packages for zero-inflated generalized linear mixed modeling.
    The R Journal, 9(2), 378-400.
    Hardin, J. W., & Hilbe, J. M. (2007). Generalized Linear Models and
    Extensions (2nd ed.), chapter on negative binomial models.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
import numpy as np
from numpy.typing import NDArray
from scipy.special import digamma, expit, gammaln, polygamma


# =====================================================================
# Link functions
# =====================================================================

class Link(ABC):
    """Abstract link function g(μ) mapping mean to linear predictor."""

    @property
    @abstractmethod
    def name(self) -> str:
        ...

    @abstractmethod
    def link(self, mu: NDArray) -> NDArray:
        """g(μ) → η."""
        ...

    @abstractmethod
    def linkinv(self, eta: NDArray) -> NDArray:
        """g⁻¹(η) → μ."""
        ...

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}()"


class LogLink(Link):
    """Log link: g(μ) = log(μ). Used for the conditional count mean."""

    @property
    def name(self) -> str:
        return 'log'

    def link(self, mu: NDArray) -> NDArray:
        return np.log(np.maximum(mu, 1e-10))

    def linkinv(self, eta: NDArray) -> NDArray:
        # Clip to prevent overflow
        eta = np.clip(eta, -500, 500)
        return np.exp(eta)


class LogitLink(Link):
    """Logit link: g(π) = log(π/(1-π)). Used for the zero-inflation probability."""

    @property
    def name(self) -> str:
        return 'logit'

    def link(self, mu: NDArray) -> NDArray:
        mu = np.clip(mu, 1e-10, 1 - 1e-10)
        return np.log(mu / (1 - mu))

    def linkinv(self, eta: NDArray) -> NDArray:
        return expit(eta)


# =====================================================================
# Family base class
# =====================================================================

class Family(ABC):
    """
    Count-data family with a log link.

    Extra parameters (dispersion) are passed around as a 1-D array on
    an unconstrained scale, in the order given by extra_names.
    """

    def __init__(self):
        self._link = LogLink()

    @property
    @abstractmethod
    def name(self) -> str:
        ...

    @property
    def link(self) -> Link:
        return self._link

    @property
    def extra_names(self) -> tuple[str, ...]:
        """Names of the extra parameters, on their unconstrained scale."""
        return ()

    @property
    def n_extra(self) -> int:
        return len(self.extra_names)

    def extra_start(self) -> NDArray:
        """Starting values for the extra parameters."""
        return np.zeros(self.n_extra, dtype=np.float64)

    def extra_bounds(self) -> list[tuple[float | None, float | None]]:
        """Box bounds for the extra parameters (L-BFGS-B format)."""
        return [(-20.0, 20.0)] * self.n_extra

    @property
    def dispersion_name(self) -> str | None:
        """Name of the reported dispersion parameter, or None."""
        return None

    def dispersion(self, extra: NDArray) -> float | None:
        """Dispersion on its natural scale, or None for Poisson."""
        return None

    @abstractmethod
    def variance(self, mu: NDArray, extra: NDArray) -> NDArray:
        """Variance function V(μ) given the extra parameters."""
        ...

    @abstractmethod
    def logpmf(self, y: NDArray, eta: NDArray, extra: NDArray) -> NDArray:
        """Elementwise log f(y | η)."""
        ...

    @abstractmethod
    def derivatives(
        self, y: NDArray, eta: NDArray, extra: NDArray
    ) -> tuple[NDArray, NDArray]:
        """First and second derivative of logpmf with respect to η."""
        ...

    def log_likelihood(self, y: NDArray, eta: NDArray, extra: NDArray) -> float:
        """Total conditional log-likelihood Σ log f(y_i | η_i)."""
        return float(np.sum(self.logpmf(y, eta, extra)))

    def mean(self, eta: NDArray, extra: NDArray) -> NDArray:
        """Expected response E[y | η]."""
        return self.link.linkinv(eta)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(link={self._link.name!r})"


# =====================================================================
# Concrete families
# =====================================================================

class Poisson(Family):
    """Poisson family. Default link: log.

    V(μ) = μ
    log f = y η - μ - log(y!)
    """

    @property
    def name(self) -> str:
        return 'poisson'

    def variance(self, mu: NDArray, extra: NDArray) -> NDArray:
        return np.maximum(mu, 1e-10)

    def logpmf(self, y: NDArray, eta: NDArray, extra: NDArray) -> NDArray:
        mu = self.link.linkinv(eta)
        return y * eta - mu - gammaln(y + 1.0)

    def derivatives(
        self, y: NDArray, eta: NDArray, extra: NDArray
    ) -> tuple[NDArray, NDArray]:
        mu = self.link.linkinv(eta)
        return y - mu, -mu


class NegativeBinomial1(Family):
    """Negative binomial with linear variance (glmmTMB nbinom1).

    V(μ) = μ (1 + φ), size k = μ/φ varies with the mean.
    Extra parameter: log φ.
    """

    @property
    def name(self) -> str:
        return 'nbinom1'

    @property
    def extra_names(self) -> tuple[str, ...]:
        return ('log_phi',)

    @property
    def dispersion_name(self) -> str | None:
        return 'phi'

    def dispersion(self, extra: NDArray) -> float | None:
        return float(np.exp(extra[0]))

    def variance(self, mu: NDArray, extra: NDArray) -> NDArray:
        return mu * (1.0 + np.exp(extra[0]))

    def _size(self, eta: NDArray, log_phi: float) -> NDArray:
        return np.exp(np.clip(eta - log_phi, -500, 500))

    def logpmf(self, y: NDArray, eta: NDArray, extra: NDArray) -> NDArray:
        log_phi = extra[0]
        k = self._size(eta, log_phi)
        log1p_phi = np.logaddexp(0.0, log_phi)
        # k/(k+μ) = 1/(1+φ) and μ/(k+μ) = φ/(1+φ)
        return (gammaln(y + k) - gammaln(k) - gammaln(y + 1.0)
                - k * log1p_phi + y * (log_phi - log1p_phi))

    def derivatives(
        self, y: NDArray, eta: NDArray, extra: NDArray
    ) -> tuple[NDArray, NDArray]:
        log_phi = extra[0]
        k = self._size(eta, log_phi)
        log1p_phi = np.logaddexp(0.0, log_phi)
        # dk/dη = k
        d1 = k * (digamma(y + k) - digamma(k) - log1p_phi)
        d2 = d1 + k ** 2 * (polygamma(1, y + k) - polygamma(1, k))
        return d1, d2


class NegativeBinomial2(Family):
    """Negative binomial with quadratic variance (glmmTMB nbinom2).

    V(μ) = μ (1 + μ/θ), fixed size θ.
    Extra parameter: log θ.
    """

    @property
    def name(self) -> str:
        return 'nbinom2'

    @property
    def extra_names(self) -> tuple[str, ...]:
        return ('log_theta',)

    @property
    def dispersion_name(self) -> str | None:
        return 'theta'

    def dispersion(self, extra: NDArray) -> float | None:
        return float(np.exp(extra[0]))

    def variance(self, mu: NDArray, extra: NDArray) -> NDArray:
        return mu * (1.0 + mu / np.exp(extra[0]))

    def logpmf(self, y: NDArray, eta: NDArray, extra: NDArray) -> NDArray:
        log_theta = extra[0]
        theta = np.exp(log_theta)
        log_theta_plus_mu = np.logaddexp(log_theta, eta)
        return (gammaln(y + theta) - gammaln(theta) - gammaln(y + 1.0)
                + theta * log_theta + y * eta
                - (theta + y) * log_theta_plus_mu)

    def derivatives(
        self, y: NDArray, eta: NDArray, extra: NDArray
    ) -> tuple[NDArray, NDArray]:
        log_theta = extra[0]
        theta = np.exp(log_theta)
        # μ/(θ+μ)
        p = expit(eta - log_theta)
        d1 = y - (theta + y) * p
        d2 = -(theta + y) * p * (1.0 - p)
        return d1, d2


# =====================================================================
# Zero inflation
# =====================================================================

class ZeroInflated(Family):
    """Single-intercept zero-inflation around a count family.

    P(y = 0) = π + (1 - π) f(0 | η)
    P(y > 0) = (1 - π) f(y | η)
    π = logistic(ψ), with ψ the last extra parameter.
    """

    def __init__(self, base: Family):
        super().__init__()
        if isinstance(base, ZeroInflated):
            raise ValueError("Family is already zero-inflated")
        self._base = base
        self._zi_link = LogitLink()

    @property
    def base(self) -> Family:
        return self._base

    @property
    def name(self) -> str:
        return self._base.name

    @property
    def extra_names(self) -> tuple[str, ...]:
        return self._base.extra_names + ('zi_logit',)

    def extra_start(self) -> NDArray:
        return np.append(self._base.extra_start(), -1.0)

    def extra_bounds(self) -> list[tuple[float | None, float | None]]:
        return self._base.extra_bounds() + [(-20.0, 20.0)]

    @property
    def dispersion_name(self) -> str | None:
        return self._base.dispersion_name

    def dispersion(self, extra: NDArray) -> float | None:
        return self._base.dispersion(extra[:-1])

    def zero_probability(self, extra: NDArray) -> float:
        """Structural-zero probability π."""
        return float(self._zi_link.linkinv(extra[-1]))

    def variance(self, mu: NDArray, extra: NDArray) -> NDArray:
        pi = self.zero_probability(extra)
        base_var = self._base.variance(mu, extra[:-1])
        return (1.0 - pi) * (base_var + pi * mu ** 2)

    def mean(self, eta: NDArray, extra: NDArray) -> NDArray:
        return (1.0 - self.zero_probability(extra)) * self.link.linkinv(eta)

    def _log_pi_terms(self, psi: float) -> tuple[float, float]:
        # log π and log(1 - π) without overflow
        return -np.logaddexp(0.0, -psi), -np.logaddexp(0.0, psi)

    def logpmf(self, y: NDArray, eta: NDArray, extra: NDArray) -> NDArray:
        log_pi, log_1m_pi = self._log_pi_terms(extra[-1])
        lc = log_1m_pi + self._base.logpmf(y, eta, extra[:-1])
        return np.where(y == 0, np.logaddexp(log_pi, lc), lc)

    def derivatives(
        self, y: NDArray, eta: NDArray, extra: NDArray
    ) -> tuple[NDArray, NDArray]:
        log_pi, log_1m_pi = self._log_pi_terms(extra[-1])
        base_extra = extra[:-1]
        g, h = self._base.derivatives(y, eta, base_extra)
        lc = log_1m_pi + self._base.logpmf(y, eta, base_extra)
        # share of P(y=0) coming from the count component
        w = np.exp(lc - np.logaddexp(log_pi, lc))
        d1_zero = w * g
        d2_zero = w * h + w * (1.0 - w) * g ** 2
        zero = (y == 0)
        return np.where(zero, d1_zero, g), np.where(zero, d2_zero, h)

    def __repr__(self) -> str:
        return f"ZeroInflated({self._base!r})"


# =====================================================================
# Family name → class mapping + resolver
# =====================================================================

_FAMILY_CLASSES: dict[str, type[Family]] = {
    'poisson': Poisson,
    'nbinom1': NegativeBinomial1,
    'nbinom2': NegativeBinomial2,
    'negative_binomial': NegativeBinomial2,
}

# Names accepted by resolve_family()
FAMILY_NAMES = tuple(_FAMILY_CLASSES)


def resolve_family(family: str | Family) -> Family:
    """Resolve a family argument to a Family instance.

    Args:
        family: Either a string name ('poisson', 'nbinom1', 'nbinom2',
                'negative_binomial') or a Family instance (passed through).

    Returns:
        Family instance.

    Raises:
        ValueError: If string name is not recognized.
        TypeError: If argument is neither string nor Family.
    """
    if isinstance(family, Family):
        return family
    if isinstance(family, str):
        cls = _FAMILY_CLASSES.get(family.lower())
        if cls is None:
            valid = ', '.join(
                sorted(k for k in _FAMILY_CLASSES.keys() if k != 'negative_binomial')
            )
            raise ValueError(
                f"Unknown family: {family!r}. Valid families: {valid}"
            )
        return cls()
    raise TypeError(f"family must be str or Family, got {type(family).__name__}")
