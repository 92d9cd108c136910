"""Optimisation engine for GEM T2 motor controller settings."""

from __future__ import annotations

from gem_core import cache as _cache
from gem_core import cache_settings as _cache_settings
from gem_core import constants as _constants
from gem_core import errors as _errors
from gem_core import hashing as _hashing
from gem_core import optimizer as _optimizer
from gem_core import parameters as _parameters
from gem_core import performance as _performance
from gem_core import profiles as _profiles
from gem_core import scenarios as _scenarios
from gem_core.cache import *  # noqa: F401,F403
from gem_core.cache_settings import *  # noqa: F401,F403
from gem_core.constants import *  # noqa: F401,F403
from gem_core.errors import *  # noqa: F401,F403
from gem_core.hashing import *  # noqa: F401,F403
from gem_core.optimizer import *  # noqa: F401,F403
from gem_core.parameters import *  # noqa: F401,F403
from gem_core.performance import *  # noqa: F401,F403
from gem_core.profiles import *  # noqa: F401,F403
from gem_core.scenarios import *  # noqa: F401,F403

__all__ = list(
    dict.fromkeys(
        [
            *_constants.__all__,
            *_errors.__all__,
            *_parameters.__all__,
            *_profiles.__all__,
            *_optimizer.__all__,
            *_performance.__all__,
            *_hashing.__all__,
            *_cache_settings.__all__,
            *_scenarios.__all__,
            *_cache.__all__,
        ]
    )
)
