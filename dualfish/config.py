"""
Stitch parameters for dual-fisheye to equirectangular conversion.

A StitchConfig is built once per stitch call and never modified; use
replace() to derive a variant.
"""

import json
import math
from collections.abc import Mapping
from types import MappingProxyType


LENSES = ('left', 'right')

DEFAULTS = {
    'scale': 1.0,
    'fov_deg': 200.0,            # 198-205 gives a wider overlap if seams appear
    'radius_scale': 0.985,
    'centers': {'left': (0.25, 0.50), 'right': (0.75, 0.50)},
    'roll_deg': {'left': 0.0, 'right': 0.0},
    'yaw_bias_deg': {'left': 0.0, 'right': 0.0},
    'global_yaw_deg': 0.0,
    'blend_enable': True,
    'blend_gamma': 2.0,
}

# camelCase keys used by exported parameter files
_ALIASES = {
    'fovDeg': 'fov_deg',
    'radiusScale': 'radius_scale',
    'rollDeg': 'roll_deg',
    'yawBiasDeg': 'yaw_bias_deg',
    'globalYawDeg': 'global_yaw_deg',
}


class ConfigError(ValueError):
    """Raised for parameter sets that cannot produce a panorama."""


def _finite(name, value):
    try:
        value = float(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{name} must be a number, got {value!r}")
    if not math.isfinite(value):
        raise ConfigError(f"{name} must be finite, got {value}")
    return value


def _per_lens(name, value, default):
    if value is None:
        value = default
    if not isinstance(value, Mapping):
        raise ConfigError(f"{name} must map 'left' and 'right' to values")
    unknown = set(value) - set(LENSES)
    if unknown:
        raise ConfigError(f"{name} has unknown lens keys: {sorted(unknown)}")
    return {lens: value.get(lens, default[lens]) for lens in LENSES}


class StitchConfig:
    """
    Immutable lens geometry and blend parameters.

    Angles are given in degrees; lens centers are fractions of the
    source width and height.
    """

    __slots__ = ('scale', 'fov_deg', 'radius_scale', 'centers', 'roll_deg',
                 'yaw_bias_deg', 'global_yaw_deg', 'blend_enable', 'blend_gamma')

    def __init__(self,
                 scale=DEFAULTS['scale'],
                 fov_deg=DEFAULTS['fov_deg'],
                 radius_scale=DEFAULTS['radius_scale'],
                 centers=None,
                 roll_deg=None,
                 yaw_bias_deg=None,
                 global_yaw_deg=DEFAULTS['global_yaw_deg'],
                 blend_enable=DEFAULTS['blend_enable'],
                 blend_gamma=DEFAULTS['blend_gamma']):
        """
        Validate and store stitch parameters.

        Args:
            scale: Output width relative to source width
            fov_deg: Per-lens field of view in degrees, in (0, 360]
            radius_scale: Fraction of the ideal lens circle radius to accept, in (0, 1]
            centers: {'left': (x, y), 'right': (x, y)} normalized lens centers
            roll_deg: {'left': deg, 'right': deg} clockwise roll per lens
            yaw_bias_deg: {'left': deg, 'right': deg} extra yaw per lens
            global_yaw_deg: Horizontal rotation of the whole panorama
            blend_enable: Feather-blend the overlap (hard seam when False)
            blend_gamma: Feather falloff exponent, >= 0

        Raises:
            ConfigError: If any parameter is out of range
        """
        scale = _finite('scale', scale)
        if scale <= 0:
            raise ConfigError(f"scale must be positive, got {scale}")

        fov_deg = _finite('fov_deg', fov_deg)
        if not 0.0 < fov_deg <= 360.0:
            raise ConfigError(f"fov_deg must be in (0, 360], got {fov_deg}")

        radius_scale = _finite('radius_scale', radius_scale)
        if not 0.0 < radius_scale <= 1.0:
            raise ConfigError(f"radius_scale must be in (0, 1], got {radius_scale}")

        blend_gamma = _finite('blend_gamma', blend_gamma)
        if blend_gamma < 0:
            raise ConfigError(f"blend_gamma must be >= 0, got {blend_gamma}")

        centers = _per_lens('centers', centers, DEFAULTS['centers'])
        for lens, center in centers.items():
            try:
                cx, cy = center
            except (TypeError, ValueError):
                raise ConfigError(f"centers.{lens} must be an (x, y) pair, got {center!r}")
            centers[lens] = (_finite(f'centers.{lens}[0]', cx),
                             _finite(f'centers.{lens}[1]', cy))

        roll_deg = _per_lens('roll_deg', roll_deg, DEFAULTS['roll_deg'])
        yaw_bias_deg = _per_lens('yaw_bias_deg', yaw_bias_deg, DEFAULTS['yaw_bias_deg'])
        for lens in LENSES:
            roll_deg[lens] = _finite(f'roll_deg.{lens}', roll_deg[lens])
            yaw_bias_deg[lens] = _finite(f'yaw_bias_deg.{lens}', yaw_bias_deg[lens])

        if not isinstance(blend_enable, bool):
            raise ConfigError(f"blend_enable must be true or false, got {blend_enable!r}")

        set_ = object.__setattr__
        set_(self, 'scale', scale)
        set_(self, 'fov_deg', fov_deg)
        set_(self, 'radius_scale', radius_scale)
        set_(self, 'centers', MappingProxyType(centers))
        set_(self, 'roll_deg', MappingProxyType(roll_deg))
        set_(self, 'yaw_bias_deg', MappingProxyType(yaw_bias_deg))
        set_(self, 'global_yaw_deg', _finite('global_yaw_deg', global_yaw_deg))
        set_(self, 'blend_enable', blend_enable)
        set_(self, 'blend_gamma', blend_gamma)

    def __setattr__(self, name, value):
        raise AttributeError(f"StitchConfig is read-only (tried to set {name!r})")

    def __delattr__(self, name):
        raise AttributeError(f"StitchConfig is read-only (tried to delete {name!r})")

    def __eq__(self, other):
        if not isinstance(other, StitchConfig):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def __hash__(self):
        return hash(json.dumps(self.to_dict(), sort_keys=True))

    def __repr__(self):
        return f"StitchConfig({self.to_dict()!r})"

    @property
    def half_fov(self):
        """Half field of view in radians."""
        return math.radians(self.fov_deg) / 2.0

    @property
    def global_yaw(self):
        return math.radians(self.global_yaw_deg)

    def output_size(self, src_width):
        """
        Panorama size for a source of the given width.

        The height is rounded first and the width is twice that, so the
        2:1 aspect ratio is exact.

        Returns:
            (width, height)
        """
        height = int(round(src_width * self.scale / 2.0))
        if height < 1:
            raise ConfigError(
                f"scale {self.scale} gives an empty panorama for source width {src_width}"
            )
        return 2 * height, height

    def replace(self, **changes):
        """Return a copy with some fields changed."""
        params = {
            'scale': self.scale,
            'fov_deg': self.fov_deg,
            'radius_scale': self.radius_scale,
            'centers': dict(self.centers),
            'roll_deg': dict(self.roll_deg),
            'yaw_bias_deg': dict(self.yaw_bias_deg),
            'global_yaw_deg': self.global_yaw_deg,
            'blend_enable': self.blend_enable,
            'blend_gamma': self.blend_gamma,
        }
        params.update(changes)
        return StitchConfig(**params)

    def to_dict(self):
        """Nested dictionary in the parameter-file layout."""
        return {
            'scale': self.scale,
            'fov_deg': self.fov_deg,
            'radius_scale': self.radius_scale,
            'centers': {lens: list(self.centers[lens]) for lens in LENSES},
            'roll_deg': dict(self.roll_deg),
            'yaw_bias_deg': dict(self.yaw_bias_deg),
            'global_yaw_deg': self.global_yaw_deg,
            'blend': {'enable': self.blend_enable, 'gamma': self.blend_gamma},
        }

    @classmethod
    def from_dict(cls, data):
        """
        Build a config from a nested dictionary.

        Accepts snake_case or camelCase keys and a nested
        ``blend: {enable, gamma}`` block. Missing keys take defaults.
        """
        if not isinstance(data, dict):
            raise ConfigError(f"config must be a mapping, got {type(data).__name__}")

        params = {}
        for key, value in data.items():
            key = _ALIASES.get(key, key)
            if key == 'blend':
                if not isinstance(value, Mapping):
                    raise ConfigError("blend must be a mapping with 'enable' and 'gamma'")
                if 'enable' in value:
                    params['blend_enable'] = value['enable']
                if 'gamma' in value:
                    params['blend_gamma'] = value['gamma']
            elif key == 'logOnce':
                # display-only flag of older parameter files
                continue
            elif key in StitchConfig.__slots__:
                params[key] = value
            else:
                raise ConfigError(f"Unknown config key: {key!r}")

        return cls(**params)

    @classmethod
    def from_json(cls, filepath):
        """Load a config from a JSON parameter file."""
        try:
            with open(filepath, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigError(f"Failed to read config from {filepath}: {str(e)}")

        return cls.from_dict(data)

    def to_json(self, filepath):
        with open(filepath, 'w', encoding='utf-8') as f:
            json.dump(self.to_dict(), f, indent=2)
