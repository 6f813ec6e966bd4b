"""
Robot emulator producing synthetic encoder and depth streams.

The emulator animates a reference joint state (the ground truth), reads
it through biased, noisy encoders at the joint sensor rate and renders it
into noisy depth frames at the visual sensor rate. Depth frames are
stamped with their capture time and delivered ``visual_sensor_delay``
seconds later, like a camera pipeline with latency.

Two drivers are provided:

- simulate(duration): deterministic, advances simulated time as fast as
  possible and calls the callbacks in delivery order from the caller's
  thread.
- run(): real-time, a clock thread and a camera thread pace the streams
  by wall-clock time stretched by ``dilation``.
"""

import logging
import threading
import time
from collections import deque

import numpy as np

from ..config import EmulatorConfig
from ..exceptions import ConfigurationError, LifecycleError
from ..observations import DepthFrame, EncoderSample
from .animators import StaticAnimator

logger = logging.getLogger(__name__)


class RobotEmulator:
    """
    Synthetic robot with joint encoders and a depth camera.

    Parameters
    ----------
    kinematics : RobotKinematics
        Joint layout
    renderer : Renderer
        Renders the ground-truth state into range images
    animator : RobotAnimator, optional
        Moves the ground truth (default: StaticAnimator)
    joint_rate : float, optional
        Encoder rate in Hz (default: 1000)
    visual_rate : float, optional
        Camera rate in Hz (default: 30)
    dilation : float, optional
        Time dilation; > 1 slows the robot and the real-time driver down
    visual_sensor_delay : float, optional
        Latency between capture and delivery of a depth frame (s)
    initial_state : np.ndarray, optional
        Starting joint angles (default: zeros)
    encoder_bias : np.ndarray or float, optional
        Constant offset added to every encoder reading
    encoder_sigma : float, optional
        Standard deviation of encoder noise
    depth_noise : float, optional
        Standard deviation of range noise on pixels with a return
    rng : np.random.Generator, optional
        Random source for sensor noise
    truth_length : int, optional
        Number of most recent ground-truth samples kept by ground_truth()

    Examples
    --------
    >>> emulator = RobotEmulator(arm, renderer, SinusoidalAnimator(),
    ...                          joint_rate=1000, visual_rate=30)
    >>> emulator.joint_sensor_callback(controller.joints_obsrv_callback)
    >>> emulator.image_sensor_callback(controller.image_obsrv_callback)
    >>> emulator.simulate(5.0)
    """

    def __init__(self, kinematics, renderer, animator=None, joint_rate=1000.0,
                 visual_rate=30.0, dilation=1.0, visual_sensor_delay=0.0,
                 initial_state=None, encoder_bias=0.0, encoder_sigma=0.0,
                 depth_noise=0.0, rng=None, truth_length=600000):
        self.config = EmulatorConfig(joint_sensor_rate=joint_rate,
                                     visual_sensor_rate=visual_rate,
                                     visual_sensor_delay=visual_sensor_delay,
                                     dilation=dilation)
        self.kinematics = kinematics
        self.renderer = renderer
        self.animator = StaticAnimator() if animator is None else animator
        self.rng = np.random.default_rng() if rng is None else rng

        n = kinematics.joint_count
        if initial_state is None:
            initial_state = np.zeros(n)
        self._state = kinematics.check_state(np.array(initial_state, dtype=float))
        self.encoder_bias = np.broadcast_to(np.asarray(encoder_bias, dtype=float), (n,)).copy()
        if encoder_sigma < 0 or depth_noise < 0:
            raise ConfigurationError("Sensor noise levels must be non-negative")
        self.encoder_sigma = float(encoder_sigma)
        self.depth_noise = float(depth_noise)

        self._time = 0.0
        self._tick = 0
        self._capture_index = 1
        self._pending_frames = deque()
        if int(truth_length) < 1:
            raise ConfigurationError("truth_length must be >= 1")
        self._truth_times = deque([0.0], maxlen=int(truth_length))
        self._truth_states = deque([self._state.copy()], maxlen=int(truth_length))
        self._observation = None

        self._joint_callbacks = []
        self._image_callbacks = []

        self._lock = threading.Lock()
        self._running = threading.Event()
        self._stop = threading.Event()
        self._threads = []

    @classmethod
    def from_dict(cls, params, kinematics, renderer, animator=None, **kwargs):
        """Build an emulator from the 'emulator/' options of a parameter tree."""
        config = EmulatorConfig.from_dict(params)
        return cls(kinematics, renderer, animator,
                   joint_rate=config.joint_sensor_rate,
                   visual_rate=config.visual_sensor_rate,
                   dilation=config.dilation,
                   visual_sensor_delay=config.visual_sensor_delay,
                   **kwargs)

    # ------------------------------------------------------------------
    # Wiring
    # ------------------------------------------------------------------
    def joint_sensor_callback(self, callback):
        """Register a consumer of EncoderSample objects."""
        self._joint_callbacks.append(callback)

    def image_sensor_callback(self, callback):
        """Register a consumer of DepthFrame objects."""
        self._image_callbacks.append(callback)

    @property
    def joint_period(self):
        return 1.0 / self.config.joint_sensor_rate

    @property
    def visual_period(self):
        return 1.0 / self.config.visual_sensor_rate

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def state(self):
        """Current ground-truth joint angles."""
        with self._lock:
            return self._state.copy()

    @property
    def time(self):
        return self._time

    def ground_truth(self):
        """
        Recorded ground truth, limited to the last ``truth_length`` samples.

        Returns
        -------
        times : np.ndarray
            Simulated times (T,)
        states : np.ndarray
            Joint angles (T, joint_count)
        """
        with self._lock:
            return np.array(self._truth_times), np.array(self._truth_states)

    def observation(self):
        """Most recently captured depth frame, or None."""
        return self._observation

    # ------------------------------------------------------------------
    # Deterministic driver
    # ------------------------------------------------------------------
    def simulate(self, duration):
        """
        Advance simulated time by ``duration`` seconds.

        Encoder samples are delivered every joint period. Depth frames are
        captured every visual period and delivered once their delay has
        elapsed, before the encoder sample of the same tick.
        """
        if self._threads:
            raise LifecycleError("simulate() cannot be used while the real-time driver runs")

        ticks = int(round(duration * self.config.joint_sensor_rate))
        for _ in range(ticks):
            sample, frame = self._step()
            if frame is not None:
                self._pending_frames.append((frame.timestamp + self.config.visual_sensor_delay, frame))
            self._deliver_due_frames(sample.timestamp)
            self._emit(self._joint_callbacks, sample)

        logger.debug("Simulated %.3f s (%d encoder ticks)", duration, ticks)

    def _deliver_due_frames(self, now):
        while self._pending_frames and self._pending_frames[0][0] <= now + 1e-12:
            _, frame = self._pending_frames.popleft()
            self._emit(self._image_callbacks, frame)

    def _step(self):
        """Advance the clock by one joint period and read the sensors."""
        now, state = self._advance_clock()

        frame = None
        if now >= self._capture_index * self.visual_period - 1e-12:
            self._capture_index += 1
            frame = self._capture(now, state)
        return self._read_encoders(now, state), frame

    def _advance_clock(self):
        dt = self.joint_period
        with self._lock:
            self._tick += 1
            self._time = self._tick * dt
            self._state = self.kinematics.clip(
                self.animator.animate(self._state, dt, self.config.dilation))
            self._truth_times.append(self._time)
            self._truth_states.append(self._state.copy())
            return self._time, self._state.copy()

    def _read_encoders(self, timestamp, state):
        readings = state + self.encoder_bias
        if self.encoder_sigma > 0:
            readings = readings + self.encoder_sigma * self.rng.standard_normal(len(readings))
        return EncoderSample(timestamp, readings)

    def _capture(self, timestamp, state):
        ranges = np.array(self.renderer.render(state), dtype=float)
        if self.depth_noise > 0:
            hit = np.isfinite(ranges)
            ranges[hit] += self.depth_noise * self.rng.standard_normal(np.count_nonzero(hit))
        frame = DepthFrame(timestamp, ranges)
        self._observation = frame
        return frame

    @staticmethod
    def _emit(callbacks, observation):
        for callback in callbacks:
            callback(observation)

    # ------------------------------------------------------------------
    # Real-time driver
    # ------------------------------------------------------------------
    def run(self):
        """
        Start the real-time driver.

        One thread advances the clock and publishes encoder samples, a
        second one captures and publishes depth frames. Both periods are
        stretched by the dilation factor.
        """
        if self._stop.is_set():
            raise LifecycleError("Emulator has been shut down")
        if self._threads:
            return

        self._running.set()
        self._threads = [
            threading.Thread(target=self._clock_loop, name='emulator-clock', daemon=True),
            threading.Thread(target=self._camera_loop, name='emulator-camera', daemon=True),
        ]
        for thread in self._threads:
            thread.start()
        logger.info("Robot emulator running: joints %.0f Hz, camera %.0f Hz, dilation %.2f",
                    self.config.joint_sensor_rate, self.config.visual_sensor_rate,
                    self.config.dilation)

    def pause(self):
        """Freeze the robot and both sensor streams."""
        self._running.clear()
        logger.info("Robot emulator paused")

    def resume(self):
        if self._stop.is_set():
            raise LifecycleError("Emulator has been shut down")
        self._running.set()
        logger.info("Robot emulator resumed")

    def toggle_pause(self):
        if self._running.is_set():
            self.pause()
        else:
            self.resume()

    @property
    def paused(self):
        return not self._running.is_set()

    def shutdown(self, timeout=1.0):
        """Stop the real-time driver and join its threads."""
        self._stop.set()
        self._running.set()
        for thread in self._threads:
            thread.join(timeout)
        self._threads = []

    def _wait_running(self):
        while not self._running.wait(0.05):
            if self._stop.is_set():
                return False
        return not self._stop.is_set()

    def _clock_loop(self):
        period = self.joint_period * self.config.dilation
        next_tick = time.monotonic()
        while self._wait_running():
            now, state = self._advance_clock()
            self._emit(self._joint_callbacks, self._read_encoders(now, state))

            next_tick += period
            delay = next_tick - time.monotonic()
            if delay > 0:
                time.sleep(delay)
            else:
                next_tick = time.monotonic()

    def _camera_loop(self):
        period = self.visual_period * self.config.dilation
        latency = self.config.visual_sensor_delay * self.config.dilation
        pending = deque()
        next_capture = time.monotonic() + period

        while self._wait_running():
            now = time.monotonic()
            if now >= next_capture:
                with self._lock:
                    timestamp, state = self._time, self._state.copy()
                pending.append((now + latency, self._capture(timestamp, state)))
                next_capture += period
                if next_capture < now:
                    next_capture = now + period

            while pending and pending[0][0] <= time.monotonic():
                self._emit(self._image_callbacks, pending.popleft()[1])

            wake = next_capture if not pending else min(next_capture, pending[0][0])
            delay = wake - time.monotonic()
            if delay > 0:
                time.sleep(min(delay, 0.05))
