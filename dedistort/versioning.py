# -*- coding: utf-8 -*-
"""
Algorithm Versioning - Version stamp decorator for registration components.

Provides the ``@algorithm_version`` class decorator that stamps a semantic
version string on correlators, grid builders and co-registration classes.
The stamp is copied into result metadata so that a stored correction can be
traced back to the algorithm revision that produced it.

Author
------
Steven Siebert

License
-------
MIT License
Copyright (c) 2024 geoint.org
See LICENSE file for full text.

Created
-------
2026-03-02

Modified
--------
2026-03-02
"""

# Standard library
import importlib.metadata
from typing import Optional, Type, TypeVar

T = TypeVar('T')


def algorithm_version(version: Optional[str] = None):
    """Class decorator that sets ``__algorithm_version__`` on a class.

    Parameters
    ----------
    version : str, optional
        Semantic version string (e.g., ``'1.0.0'``). When omitted, the
        installed ``dedistort`` distribution version is used, or
        ``'unknown'`` when the package is not installed.

    Returns
    -------
    Callable
        Class decorator.

    Examples
    --------
    >>> @algorithm_version('1.0.0')
    ... class MyCorrelator:
    ...     pass
    >>> MyCorrelator.__algorithm_version__
    '1.0.0'
    """
    def decorator(cls: Type[T]) -> Type[T]:
        if version:
            cls.__algorithm_version__ = version
        else:
            try:
                cls.__algorithm_version__ = importlib.metadata.version(
                    'dedistort'
                )
            except importlib.metadata.PackageNotFoundError:
                cls.__algorithm_version__ = "unknown"
        return cls
    return decorator


def version_of(obj: object) -> str:
    """Version stamp of *obj* or its class, ``'unknown'`` when unstamped."""
    return getattr(obj, '__algorithm_version__', 'unknown')
