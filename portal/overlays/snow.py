"""Snowfall overlay: a continuous particle simulation.

Particles are spawned above the viewport, fall at a speed derived from the
configured fall duration (larger flakes fall faster), drift with the wind,
sway and twinkle. A flake that leaves the bottom edge is recycled to the top
with fresh parameters rather than dropped, so the population stays stable
under continuous spawning.

Units: positions in px, time in seconds, rotation in degrees.
"""

import math
from dataclasses import dataclass

from portal.errors import OverlayError
from portal.logging import get_logger
from portal.overlays.base import Overlay, OverlayState

logger = get_logger(__name__)

# (cumulative probability, size class, diameter px)
SIZE_CLASSES = (
    (0.3, 'small', 3),
    (0.6, 'medium', 5),
    (0.9, 'large', 8),
    (1.0, 'xlarge', 12),
)
MAX_SIZE = 12

FALL_MARGIN = 200
BOTTOM_MARGIN = 50
EDGE_MARGIN = 100
SPAWN_OFFSET = -50

MAX_FRAME_DELTA = 0.1
MIN_SPAWN_INTERVAL = 0.05
DENSITY_CEILING = 1.5
MIN_OPACITY = 0.4
MAX_OPACITY = 1.0

STORM_CONFIG = {
    'snowflakeCount': 300,
    'speedMultiplier': 8,
    'windStrength': 8,
}
STORM_DURATION = 10.0

MELT_INTERVAL = 0.2
MELT_FRACTION = 0.1

STATS_INTERVAL = 1.0


@dataclass
class Particle:
    x: float
    y: float
    fall_speed: float
    drift: float
    size: int
    size_class: str
    sway_phase: float
    sway_rate: float
    rotation_rate: float
    rotation: float
    color: str
    opacity: float = 1.0

    def to_frame(self):
        return {
            'x': round(self.x, 1),
            'y': round(self.y, 1),
            'size': self.size,
            'rotation': round(self.rotation, 1),
            'opacity': round(self.opacity, 2),
            'color': self.color,
        }


class SnowOverlay(Overlay):
    name = 'snow-event'
    description = 'Snowfall over the page'
    requires_admin = True
    defaults = {
        'snowflakeCount': 100,
        'speedMultiplier': 4,
        'windStrength': 3,
        'baseFallTime': 10,
        'colors': ['#ffffff', '#e6f2ff', '#ccffff', '#ddeeff'],
    }
    persisted_keys = ('snowflakeCount', 'speedMultiplier', 'windStrength')

    def __init__(self, scheduler, rng=None):
        super().__init__(scheduler, rng)
        self.particles = []
        self.melting = False
        self._last_time = None
        self._frame_handle = None
        self._spawn_handle = None
        self._stats_handle = None
        self._melt_handle = None
        self._storm_handle = None
        self._pre_storm = None

    # -- derived parameters ------------------------------------------------

    @property
    def density(self):
        return int(self.config.get('snowflakeCount') or self.defaults['snowflakeCount'])

    @property
    def speed_multiplier(self):
        return float(self.config.get('speedMultiplier') or self.defaults['speedMultiplier'])

    @property
    def wind_strength(self):
        wind = self.config.get('windStrength')
        return float(self.defaults['windStrength'] if wind is None else wind)

    @property
    def fall_duration(self):
        base = float(self.config.get('baseFallTime') or self.defaults['baseFallTime'])
        return base / self.speed_multiplier

    @property
    def storm_active(self):
        return self._storm_handle is not None

    def spawn_interval(self):
        return max(MIN_SPAWN_INTERVAL, self.fall_duration / max(1, self.density))

    def fall_speed_for(self, size):
        adjusted = self.fall_duration * (1.5 - size / MAX_SIZE * 0.5)
        return (self.container.height + FALL_MARGIN) / adjusted

    def _random_drift(self, direction=None):
        if direction is None:
            direction = 1 if self.rng.random() > 0.5 else -1
        return (self.rng.random() * 0.5 + 0.5) * self.wind_strength * direction * 0.4

    def _has_surface(self, action):
        if self.container is None or not self.container.attached:
            logger.error('overlay_container_missing', overlay=self.name, action=action)
            return False
        return True

    def _require_running(self):
        if self.state != OverlayState.RUNNING:
            raise OverlayError(f'{self.name} is not running')

    # -- lifecycle ----------------------------------------------------------

    def prepare(self):
        self.melting = False
        self.particles = []
        self.populate()

    def start(self):
        self._last_time = None
        self._restart_spawning()
        self._frame_handle = self.scheduler.request_frame(self._on_frame)

    def stop(self):
        for handle in (self._frame_handle, self._spawn_handle, self._melt_handle,
                       self._storm_handle):
            self.scheduler.cancel(handle)
        self._frame_handle = None
        self._spawn_handle = None
        self._melt_handle = None
        self._storm_handle = None
        self._pre_storm = None
        self._last_time = None
        self.melting = False
        self.particles = []

    # -- particles ------------------------------------------------------------

    def spawn(self, start_y=SPAWN_OFFSET):
        """Create one particle at ``start_y`` (jittered upwards) and add it."""
        if not self._has_surface('spawn'):
            return None

        roll = self.rng.random()
        for threshold, size_class, size in SIZE_CLASSES:
            if roll < threshold:
                break

        particle = Particle(
            x=self.rng.random() * self.container.width,
            y=start_y - self.rng.random() * 50,
            fall_speed=self.fall_speed_for(size),
            drift=self._random_drift(),
            size=size,
            size_class=size_class,
            sway_phase=self.rng.random() * math.pi * 2,
            sway_rate=0.5 + self.rng.random(),
            rotation_rate=(self.rng.random() * 0.5 + 0.5) * (size / MAX_SIZE),
            rotation=self.rng.random() * 360,
            color=self.rng.choice(self.config.get('colors') or self.defaults['colors']),
            opacity=0.6 + self.rng.random() * 0.4,
        )
        self.particles.append(particle)
        return particle

    def populate(self):
        """Fill the viewport with ``density`` particles spread top to bottom."""
        if not self._has_surface('populate'):
            return
        count = self.density
        height = self.container.height
        for i in range(count):
            progress = i / count
            self.spawn(start_y=height - progress * (height - SPAWN_OFFSET))
        logger.debug('overlay_populated', overlay=self.name, count=count)

    def recycle(self, particle):
        particle.y = self.rng.random() * -100 - 50
        particle.x = self.rng.random() * self.container.width
        particle.fall_speed = self.fall_speed_for(particle.size)
        particle.drift = self._random_drift()
        particle.sway_phase = self.rng.random() * math.pi * 2
        particle.sway_rate = 0.5 + self.rng.random()
        particle.rotation_rate = (self.rng.random() * 0.5 + 0.5) * (particle.size / MAX_SIZE)

    def simulate(self, delta, timestamp):
        """Advance every particle by ``delta`` seconds at clock ``timestamp``."""
        width = self.container.width
        height = self.container.height
        for p in self.particles:
            p.y += p.fall_speed * delta
            p.x += p.drift * delta * 40
            p.x += math.sin(timestamp * p.sway_rate + p.sway_phase) * 0.8 * (delta * 60)
            p.rotation = (p.rotation + p.rotation_rate * delta * 120) % 360

            if p.y > height + BOTTOM_MARGIN:
                self.recycle(p)

            if p.x > width + EDGE_MARGIN:
                p.x = -EDGE_MARGIN
            elif p.x < -EDGE_MARGIN:
                p.x = width + EDGE_MARGIN

            twinkle = math.sin(timestamp * 2 + p.sway_phase) * 0.15 + 0.85
            p.opacity = max(MIN_OPACITY, min(MAX_OPACITY, twinkle))

    def frame(self, timestamp):
        return {
            't': timestamp,
            'overlay': self.name,
            'width': self.container.width,
            'height': self.container.height,
            'particles': [p.to_frame() for p in self.particles],
        }

    # -- timers ---------------------------------------------------------------

    def _on_frame(self, timestamp):
        if (self.state != OverlayState.RUNNING or self.container is None
                or not self.container.attached):
            self._frame_handle = None
            return

        delta = 0.0 if self._last_time is None else timestamp - self._last_time
        self._last_time = timestamp
        self.simulate(min(delta, MAX_FRAME_DELTA), timestamp)
        self.container.render(self.frame(timestamp))
        self._frame_handle = self.scheduler.request_frame(self._on_frame)

    def _on_spawn_tick(self):
        if self.state != OverlayState.RUNNING or self.melting:
            return
        if len(self.particles) < self.density * DENSITY_CEILING:
            self.spawn(SPAWN_OFFSET)

    def _restart_spawning(self):
        self.scheduler.cancel(self._spawn_handle)
        self._spawn_handle = None
        if self.state == OverlayState.RUNNING:
            self._spawn_handle = self.scheduler.call_every(self.spawn_interval(),
                                                           self._on_spawn_tick)

    def rebuild(self):
        self.particles = []
        self.populate()
        self._restart_spawning()
        self._show_values()

    # -- live reconfiguration -----------------------------------------------

    def _set_value(self, key, value):
        self.config[key] = value
        if self._pre_storm is not None:
            # survives the storm restoration
            self._pre_storm[key] = value

    def persisted_values(self):
        if self._pre_storm is not None:
            return dict(self._pre_storm)
        return super().persisted_values()

    def set_density(self, count):
        self._require_running()
        count = int(count)
        if count < 1:
            raise ValueError('density must be at least 1')

        current = len(self.particles)
        if count < current:
            del self.particles[count:]
        elif count > current and self._has_surface('set_density'):
            height = self.container.height
            for _ in range(count - current):
                self.spawn(start_y=self.rng.uniform(SPAWN_OFFSET, height))

        logger.info('overlay_density_changed', overlay=self.name,
                    before=current, after=count)
        self._set_value('snowflakeCount', count)
        self._stop_melt()
        self._restart_spawning()
        self.save_config()
        self._show_values()
        return self

    def set_speed(self, multiplier):
        self._require_running()
        multiplier = float(multiplier)
        if multiplier <= 0:
            raise ValueError('speed multiplier must be positive')

        logger.info('overlay_speed_changed', overlay=self.name,
                    before=self.config.get('speedMultiplier'), after=multiplier)
        self._set_value('speedMultiplier', multiplier)
        for p in self.particles:
            p.fall_speed = self.fall_speed_for(p.size)
        self._restart_spawning()
        self.save_config()
        self._show_values()
        return self

    def set_wind(self, strength):
        self._require_running()
        strength = float(strength)
        if strength < 0:
            raise ValueError('wind strength must not be negative')

        logger.info('overlay_wind_changed', overlay=self.name,
                    before=self.config.get('windStrength'), after=strength)
        self._set_value('windStrength', strength)
        for p in self.particles:
            p.drift = self._random_drift(1 if p.drift > 0 else -1)
        self.save_config()
        self._show_values()
        return self

    def reset(self):
        """Return to the default density, speed and wind."""
        self._require_running()
        self.scheduler.cancel(self._storm_handle)
        self._storm_handle = None
        self._pre_storm = None
        self._stop_melt()

        for key in self.persisted_keys:
            self.config[key] = self.defaults[key]
        self.rebuild()
        self.save_config()
        self._notify('Snowfall reset to defaults')
        return self

    # -- timed modes ----------------------------------------------------------

    def trigger_storm(self):
        """Switch to storm settings for STORM_DURATION seconds, then restore."""
        self._require_running()
        if self._storm_handle is None:
            self._pre_storm = {key: self.config.get(key) for key in self.persisted_keys}
        else:
            # keep the pre-storm snapshot, only push the restoration back
            self.scheduler.cancel(self._storm_handle)

        self.config.update(STORM_CONFIG)
        self._stop_melt()
        self.rebuild()
        self._storm_handle = self.scheduler.call_later(STORM_DURATION, self._end_storm)
        logger.info('overlay_storm_started', overlay=self.name, restore=self._pre_storm)
        self._notify('Snowstorm started', 'warning')
        return self

    def _end_storm(self):
        self._storm_handle = None
        snapshot, self._pre_storm = self._pre_storm, None
        if self.state != OverlayState.RUNNING or snapshot is None:
            return
        self.config.update(snapshot)
        self.rebuild()
        self.save_config()
        logger.info('overlay_storm_ended', overlay=self.name, config=snapshot)
        self._notify('Snowfall restored')

    def melt_away(self):
        """Remove a tenth of the flakes every MELT_INTERVAL until none are left."""
        self._require_running()
        self.scheduler.cancel(self._melt_handle)
        self.melting = True
        self._melt_handle = self.scheduler.call_every(MELT_INTERVAL, self._melt_tick)
        logger.info('overlay_melt_started', overlay=self.name, count=len(self.particles))
        self._notify('Snow is melting...')
        return self

    def _stop_melt(self):
        self.scheduler.cancel(self._melt_handle)
        self._melt_handle = None
        self.melting = False

    def _melt_tick(self):
        if self.state != OverlayState.RUNNING:
            return
        if not self.particles:
            self.scheduler.cancel(self._melt_handle)
            self._melt_handle = None
            logger.info('overlay_melt_finished', overlay=self.name)
            self._notify('The snow has melted', 'success')
            return
        remove = max(1, int(len(self.particles) * MELT_FRACTION))
        del self.particles[-remove:]
        self._push_stats()

    # -- controls -------------------------------------------------------------

    def values(self):
        return {key: self.config.get(key) for key in self.persisted_keys}

    def stats(self):
        return {
            'count': len(self.particles),
            'speedMultiplier': self.config.get('speedMultiplier'),
            'windStrength': self.config.get('windStrength'),
            'storm': self.storm_active,
            'melting': self.melting,
        }

    def attach_controls(self, panel):
        super().attach_controls(panel)
        self._show_values()
        self._push_stats()
        self.scheduler.cancel(self._stats_handle)
        self._stats_handle = self.scheduler.call_every(STATS_INTERVAL, self._push_stats)
        return self

    def release_controls(self):
        self.scheduler.cancel(self._stats_handle)
        self._stats_handle = None
        super().release_controls()

    def _show_values(self):
        if self.controls is not None:
            self.controls.show_values(self.values())

    def _push_stats(self):
        if self.controls is not None:
            self.controls.show_stats(self.stats())

    def _notify(self, message, level='info'):
        if self.controls is not None:
            self.controls.notify(message, level)

    def get_status(self):
        status = super().get_status()
        status['particleCount'] = len(self.particles)
        status['storm'] = self.storm_active
        status['melting'] = self.melting
        return status
