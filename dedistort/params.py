# -*- coding: utf-8 -*-
"""
Registration Parameters - Declarative, validated configuration via typing.Annotated.

Provides constraint marker types (``Range``, ``Options``, ``Desc``) for use
inside ``typing.Annotated`` class-body annotations, the ``ParamSpec``
introspection class, the ``Tunable`` base that turns those annotations into
a validating keyword-only ``__init__``, and ``RegistrationParameters``, the
single configuration object consumed by every registration entry point.

Usage
-----
::

    from dedistort.params import RegistrationParameters

    params = RegistrationParameters(tile_size=64, refine=True)
    params.step                      # 32
    params.with_overrides(use_gpu=True)

Invalid values raise ``ValidationError`` at construction time, before any
image is touched.

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
2026-03-12
"""

# Standard library
import inspect
import numbers
from enum import Enum
from typing import (
    Annotated,
    Any,
    Dict,
    Optional,
    Tuple,
    Union,
    get_args,
    get_origin,
    get_type_hints,
)

# dedistort internal
from dedistort.exceptions import ValidationError

#: Smallest tile edge the phase correlator accepts inside a grid build.
MIN_TILE_SIZE = 32

#: Smallest spacing between distortion grid nodes, in pixels.
MIN_STEP = 8

#: Starting tile size of multi-level refinement.
DEFAULT_MAX_TILE_SIZE = 128

#: Tile sizes the device path has kernels for.
GPU_TILE_SIZES = (32, 64, 128)

#: Relative distortion improvement below which refinement has converged.
CONVERGENCE_THRESHOLD = 0.01

#: Partners drawn per image when the consensus set is large.
MAX_CONSENSUS_COMPARISONS = 30


# =====================================================================
# Constraint marker types  (used inside Annotated[...])
# =====================================================================

class ParamMeta:
    """Base marker for parameter metadata in ``Annotated`` types."""


class Range(ParamMeta):
    """Inclusive numeric range constraint.

    Parameters
    ----------
    min : int or float, optional
        Minimum allowed value (inclusive).
    max : int or float, optional
        Maximum allowed value (inclusive).
    """

    __slots__ = ('min', 'max')

    def __init__(
        self,
        min: Optional[Union[int, float]] = None,
        max: Optional[Union[int, float]] = None,
    ) -> None:
        self.min = min
        self.max = max

    def __repr__(self) -> str:
        parts = []
        if self.min is not None:
            parts.append(f"min={self.min!r}")
        if self.max is not None:
            parts.append(f"max={self.max!r}")
        return f"Range({', '.join(parts)})"


class Options(ParamMeta):
    """Discrete choice constraint.

    Parameters
    ----------
    *choices
        Allowed values. Must supply at least one.
    """

    __slots__ = ('choices',)

    def __init__(self, *choices: Any) -> None:
        if not choices:
            raise ValueError("Options requires at least one choice")
        self.choices = choices

    def __repr__(self) -> str:
        return f"Options{self.choices!r}"


class Desc(ParamMeta):
    """Human-readable parameter description."""

    __slots__ = ('text',)

    def __init__(self, text: str) -> None:
        self.text = text

    def __repr__(self) -> str:
        return f"Desc({self.text!r})"


# =====================================================================
# ParamSpec
# =====================================================================

_SENTINEL = object()


def _unwrap_optional(tp: Any) -> Tuple[Any, bool]:
    """Return ``(inner_type, is_optional)`` for ``Optional[X]`` hints."""
    if get_origin(tp) is Union:
        args = [a for a in get_args(tp) if a is not type(None)]
        if len(args) == 1 and len(get_args(tp)) == 2:
            return args[0], True
    return tp, False


class ParamSpec:
    """Resolved specification for a single parameter.

    Attributes
    ----------
    name : str
        Keyword-argument name.
    param_type : type
        Expected Python type (``float``, ``int``, ``str``, ``bool``).
    default : Any
        Default value (``None`` when required).
    optional : bool
        Whether ``None`` is an accepted value.
    description : str
        Human-readable description.
    min_value, max_value : int, float, or None
        Inclusive bounds from ``Range``.
    choices : tuple or None
        Allowed values from ``Options``.
    """

    __slots__ = (
        'name', 'param_type', 'default', '_has_default', 'optional',
        'description', 'min_value', 'max_value', 'choices',
    )

    def __init__(
        self,
        name: str,
        param_type: type,
        default: Any,
        has_default: bool,
        optional: bool,
        description: str,
        min_value: Optional[Union[int, float]],
        max_value: Optional[Union[int, float]],
        choices: Optional[Tuple],
    ) -> None:
        self.name = name
        self.param_type = param_type
        self.default = default
        self._has_default = has_default
        self.optional = optional
        self.description = description
        self.min_value = min_value
        self.max_value = max_value
        self.choices = choices

    @property
    def required(self) -> bool:
        """Whether this parameter has no default."""
        return not self._has_default

    def coerce(self, value: Any) -> Any:
        """Normalize enum members to their values and numpy scalars to Python."""
        if isinstance(value, Enum):
            return value.value
        if self.param_type is float and isinstance(value, numbers.Real) \
                and not isinstance(value, bool):
            return float(value)
        if self.param_type is int and isinstance(value, numbers.Integral) \
                and not isinstance(value, bool):
            return int(value)
        return value

    def validate(self, value: Any) -> None:
        """Validate *value* against this spec's type and constraints.

        * ``int`` is accepted where ``float`` is declared.
        * ``bool`` is never accepted as a number.
        * Range bounds are inclusive.

        Raises
        ------
        ValidationError
            If *value* has the wrong type or violates a constraint.
        """
        if value is None:
            if self.optional:
                return
            raise ValidationError(f"Parameter '{self.name}' may not be None")

        if isinstance(value, bool) and self.param_type is not bool:
            raise ValidationError(
                f"Parameter '{self.name}' must be "
                f"{self.param_type.__name__}, got bool"
            )
        if self.param_type is float:
            ok = isinstance(value, (int, float))
        else:
            ok = isinstance(value, self.param_type)
        if not ok:
            raise ValidationError(
                f"Parameter '{self.name}' must be "
                f"{self.param_type.__name__}, got {type(value).__name__}"
            )

        if self.min_value is not None and value < self.min_value:
            raise ValidationError(
                f"Parameter '{self.name}' value {value!r} "
                f"is below minimum {self.min_value!r}"
            )
        if self.max_value is not None and value > self.max_value:
            raise ValidationError(
                f"Parameter '{self.name}' value {value!r} "
                f"is above maximum {self.max_value!r}"
            )
        if self.choices is not None and value not in self.choices:
            raise ValidationError(
                f"Parameter '{self.name}' value {value!r} "
                f"is not in allowed choices {self.choices!r}"
            )

    def __repr__(self) -> str:
        parts = (
            f"ParamSpec(name={self.name!r}, "
            f"param_type={self.param_type.__name__}, "
            f"required={self.required!r}"
        )
        if not self.required:
            parts += f", default={self.default!r}"
        if self.min_value is not None:
            parts += f", min_value={self.min_value!r}"
        if self.max_value is not None:
            parts += f", max_value={self.max_value!r}"
        if self.choices is not None:
            parts += f", choices={self.choices!r}"
        return parts + ")"


# =====================================================================
# Annotation collection and __init__ generation
# =====================================================================

def collect_param_specs(cls: type) -> Tuple[ParamSpec, ...]:
    """Parse ``Annotated`` type hints on *cls* into ``ParamSpec`` objects.

    Only fields whose metadata includes a ``ParamMeta`` instance are
    collected, ordered parent-first in declaration order.

    Raises
    ------
    TypeError
        If a field carries both ``Range`` and ``Options``.
    """
    hints = get_type_hints(cls, include_extras=True)

    seen: set = set()
    ordered_names: list = []
    for klass in reversed(cls.__mro__):
        for name in getattr(klass, '__annotations__', {}):
            if name not in seen and name in hints:
                seen.add(name)
                ordered_names.append(name)

    specs: list = []
    for name in ordered_names:
        hint = hints[name]
        if get_origin(hint) is not Annotated:
            continue

        base_type, optional = _unwrap_optional(hint.__args__[0])
        param_metas = [m for m in hint.__metadata__ if isinstance(m, ParamMeta)]
        if not param_metas:
            continue

        range_meta = next((m for m in param_metas if isinstance(m, Range)), None)
        options_meta = next(
            (m for m in param_metas if isinstance(m, Options)), None
        )
        desc_meta = next((m for m in param_metas if isinstance(m, Desc)), None)
        if range_meta and options_meta:
            raise TypeError(
                f"Parameter '{name}' on {cls.__qualname__}: "
                f"Range and Options are mutually exclusive."
            )

        default = getattr(cls, name, _SENTINEL)
        has_default = default is not _SENTINEL
        specs.append(ParamSpec(
            name=name,
            param_type=base_type,
            default=default if has_default else None,
            has_default=has_default,
            optional=optional,
            description=desc_meta.text if desc_meta else '',
            min_value=range_meta.min if range_meta else None,
            max_value=range_meta.max if range_meta else None,
            choices=options_meta.choices if options_meta else None,
        ))

    return tuple(specs)


def _make_init(param_specs: Tuple[ParamSpec, ...]):
    """Build a keyword-only, validating ``__init__`` from *param_specs*."""
    _specs = param_specs

    def __init__(self, **kwargs):
        expected = {s.name for s in _specs}
        unexpected = set(kwargs) - expected
        if unexpected:
            raise TypeError(
                f"{type(self).__name__}() got unexpected "
                f"keyword arguments: {', '.join(sorted(unexpected))}"
            )

        for spec in _specs:
            if spec.name in kwargs:
                value = spec.coerce(kwargs[spec.name])
            elif spec._has_default:
                value = spec.default
            else:
                raise TypeError(
                    f"{type(self).__name__}() missing required "
                    f"keyword argument: '{spec.name}'"
                )
            spec.validate(value)
            object.__setattr__(self, spec.name, value)

        if hasattr(self, '__post_init__'):
            self.__post_init__()

    params = [inspect.Parameter('self', inspect.Parameter.POSITIONAL_OR_KEYWORD)]
    for spec in _specs:
        if spec._has_default:
            params.append(inspect.Parameter(
                spec.name, inspect.Parameter.KEYWORD_ONLY, default=spec.default,
            ))
        else:
            params.append(inspect.Parameter(
                spec.name, inspect.Parameter.KEYWORD_ONLY,
            ))
    __init__.__signature__ = inspect.Signature(params)
    __init__.__qualname__ = '__init__'

    return __init__


class Tunable:
    """Base class whose ``Annotated`` fields become validated keyword arguments.

    Subclasses declare fields with ``Range``/``Options``/``Desc`` markers;
    ``__init_subclass__`` collects them into ``__param_specs__`` and
    generates ``__init__`` unless the subclass defines its own.
    """

    __param_specs__: Tuple[ParamSpec, ...] = ()

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        cls.__param_specs__ = collect_param_specs(cls)
        if cls.__param_specs__ and '__init__' not in cls.__dict__:
            cls.__init__ = _make_init(cls.__param_specs__)

    @classmethod
    def param_specs(cls) -> Tuple[ParamSpec, ...]:
        """Resolved parameter specifications, parent-first."""
        return cls.__param_specs__

    def to_dict(self) -> Dict[str, Any]:
        """Current parameter values keyed by name."""
        return {s.name: getattr(self, s.name) for s in self.__param_specs__}

    def with_overrides(self, **overrides: Any) -> 'Tunable':
        """Return a validated copy with *overrides* applied."""
        values = self.to_dict()
        values.update(overrides)
        return type(self)(**values)

    def __eq__(self, other: object) -> bool:
        if type(other) is not type(self):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def __repr__(self) -> str:
        body = ', '.join(f"{k}={v!r}" for k, v in self.to_dict().items())
        return f"{type(self).__name__}({body})"


# =====================================================================
# RegistrationParameters
# =====================================================================

class RegistrationParameters(Tunable):
    """Configuration of one registration call.

    Attributes
    ----------
    tile_size : int
        Edge of the square tiles correlated at every level when
        ``refine`` is off. Ignored by the schedule when ``refine`` is set,
        which halves from ``max_tile_size`` down to ``MIN_TILE_SIZE``.
        Consensus registration always measures at ``tile_size``.
    sampling : float
        Grid density factor; the node spacing is
        ``max(MIN_STEP, int(tile_size * sampling))``.
    threshold : float
        Signal cutoff. Tiles whose mean intensity does not exceed it are
        left unsampled.
    iterations : int
        Hard cap on refinement levels.
    refine : bool
        Multi-level mode, starting at ``max_tile_size`` and halving.
    max_tile_size : int
        Starting tile size when ``refine`` is set.
    use_gpu : bool
        Best-effort request for the device path.
    device : str or None
        Torch device string for the device path (``'cuda'``, ``'cuda:1'``,
        ``'cpu'``). ``None`` picks CUDA when available.
    interpolation : str
        Warp kernel: ``'bicubic'``, ``'lanczos'`` or ``'bilinear'``.
    smoothing_sigma : float
        Base Gaussian sigma of grid smoothing, scaled by ``step / 64``.
    max_workers : int or None
        Thread pool size for tile correlation. ``None`` uses the CPU count.
    consensus_iterations : int
        Passes of consensus correction.
    sampling_strategy : str
        ``'grid'`` or ``'interest_points'``.
    """

    tile_size: Annotated[int, Range(min=MIN_TILE_SIZE),
                         Desc('Correlation tile edge in pixels')] = 32
    sampling: Annotated[float, Range(min=0.0),
                        Desc('Grid density factor')] = 0.5
    threshold: Annotated[float, Desc('Mean tile intensity cutoff')] = 1.0
    iterations: Annotated[int, Range(min=1),
                          Desc('Maximum refinement levels')] = 3
    refine: Annotated[bool, Desc('Enable multi-level refinement')] = False
    max_tile_size: Annotated[int, Range(min=MIN_TILE_SIZE),
                             Desc('Starting tile size of refinement')] = (
        DEFAULT_MAX_TILE_SIZE
    )
    use_gpu: Annotated[bool, Desc('Try the device path first')] = False
    device: Annotated[Optional[str], Desc('Torch device string')] = None
    interpolation: Annotated[str, Options('bicubic', 'lanczos', 'bilinear'),
                             Desc('Warp interpolation kernel')] = 'bicubic'
    smoothing_sigma: Annotated[float, Range(min=0.0),
                               Desc('Base sigma of grid smoothing')] = 1.0
    max_workers: Annotated[Optional[int], Range(min=1),
                           Desc('Correlation worker threads')] = None
    consensus_iterations: Annotated[int, Range(min=1),
                                    Desc('Consensus correction passes')] = 1
    sampling_strategy: Annotated[str, Options('grid', 'interest_points'),
                                 Desc('Tile placement strategy')] = 'grid'

    def __post_init__(self) -> None:
        if self.sampling <= 0:
            raise ValidationError(
                f"sampling must be > 0, got {self.sampling!r}"
            )

    @staticmethod
    def step_for(tile_size: int, sampling: float) -> int:
        """Grid node spacing for *tile_size* at density *sampling*."""
        return max(MIN_STEP, int(tile_size * sampling))

    @property
    def step(self) -> int:
        """Grid node spacing at ``tile_size``."""
        return self.step_for(self.tile_size, self.sampling)

    @property
    def initial_tile_size(self) -> int:
        """Tile size of the first refinement level."""
        return self.max_tile_size if self.refine else self.tile_size

    def tile_schedule(self, width: int, height: int) -> Tuple[int, ...]:
        """Tile sizes of successive levels for an image of the given size.

        Levels start at ``initial_tile_size``, shrunk by halving until a
        tile fits in the image, then halve per level down to
        ``MIN_TILE_SIZE`` (repeated once the floor is reached). The
        schedule always has ``iterations`` entries; without refinement
        every entry is ``tile_size``.
        """
        size = self.initial_tile_size
        if self.refine:
            while size > MIN_TILE_SIZE and size > min(width, height):
                size = max(MIN_TILE_SIZE, size // 2)
            schedule = []
            for _ in range(self.iterations):
                schedule.append(size)
                size = max(MIN_TILE_SIZE, size // 2)
            return tuple(schedule)
        return tuple([size] * self.iterations)

    def validate_images(self, width: int, height: int) -> None:
        """Check that an image of ``width`` x ``height`` yields a usable grid.

        Raises
        ------
        ValidationError
            If not even one tile fits in the image.
        """
        smallest = min(self.tile_schedule(width, height))
        if width < smallest or height < smallest:
            raise ValidationError(
                f"Image of {width}x{height} pixels cannot hold a single "
                f"{smallest}x{smallest} tile; the distortion grid would be "
                f"degenerate"
            )
