"""
Fusion of the joint filter bank and the visual particle tracker.

The joint filters run at encoder rate and provide the published joint
angles. Whenever the visual tracker finishes a depth frame, its estimate
is compared with the joint estimate at the frame's capture time and the
difference is fed back into the joint filters as an observation of the
encoder biases. The published state therefore always comes from the
joint filters, kept aligned with the slower visual signal.

Run states
----------
stopped --run()--> running <--pause()/resume()/toggle_pause()--> paused
any state --shutdown()--> stopped (terminal)

Observations that arrive while the controller is not running are
dropped and counted, never buffered. Work already queued when pause()
is called is discarded when it is dequeued, and a visual advance in
flight is cancelled.
"""

import enum
import logging
import queue
import threading
import time
from collections import Counter

import numpy as np

from ..common.history import StateHistory
from ..common.residuals import state_residual
from ..config import FusionConfig
from ..exceptions import ConfigurationError, LifecycleError
from ..filters.particle import AdvanceStatus
from ..observations import FusedEstimate

logger = logging.getLogger(__name__)


class RunState(enum.Enum):
    STOPPED = 'stopped'
    RUNNING = 'running'
    PAUSED = 'paused'


class FusionController:
    """
    Owns both trackers and merges their estimates into one robot state.

    Parameters
    ----------
    joint_bank : JointFilterBank
        Encoder-rate joint filters
    visual_tracker : VisualParticleTracker
        Depth-frame particle tracker
    kinematics : RobotKinematics
        Shared joint layout
    config : FusionConfig, optional
        Correction noise, queue and history sizes
    synchronous : bool, optional
        If True, observations are processed in the calling thread.
        Otherwise run() starts one worker thread per sensor, fed by
        bounded channels (default: False).

    Examples
    --------
    >>> controller = FusionController(bank, tracker, kinematics, synchronous=True)
    >>> controller.initialize(initial_state)
    >>> controller.run()
    >>> controller.joints_obsrv_callback(EncoderSample(0.001, readings))
    >>> controller.current_state().state
    """

    def __init__(self, joint_bank, visual_tracker, kinematics, config=None, synchronous=False):
        n = kinematics.joint_count
        if len(joint_bank) != n:
            raise ConfigurationError(
                f"Joint filter bank has {len(joint_bank)} joints, kinematics has {n}"
            )
        if config is None:
            config = FusionConfig(visual_correction_sigmas=(0.02,) * n)
        if len(config.visual_correction_sigmas) != n:
            raise ConfigurationError(
                f"visual_correction_sigmas has {len(config.visual_correction_sigmas)} entries, "
                f"expected {n}"
            )

        self.kinematics = kinematics
        self.config = config
        self.synchronous = synchronous
        self._bank = joint_bank
        self._tracker = visual_tracker
        self._correction_sigmas = np.asarray(config.visual_correction_sigmas, dtype=float)
        self._resolution = tuple(visual_tracker.renderer.resolution)

        self._run_state = RunState.STOPPED
        self._shutdown = threading.Event()
        self._state_lock = threading.RLock()

        # Lock order: _joint_lock before _state_lock
        self._joint_lock = threading.Lock()
        self._visual_lock = threading.Lock()
        self._joint_accept_lock = threading.Lock()
        self._frame_lock = threading.Lock()

        self._joint_queue = queue.Queue(maxsize=config.joint_queue_size)
        self._pending_frame = None
        self._frame_ready = threading.Event()
        self._workers = []

        self._history = StateHistory(config.history_length, kinematics.continuous)
        self._last_joint_accepted = -np.inf
        self._last_frame_accepted = -np.inf
        self._last_joint_time = None
        self._last_frame_time = None
        self._last_frame_reference = None
        self._last_residual = np.zeros(n)

        self._initialized = False
        self._published = None
        self._stats = Counter()
        self._stats_lock = threading.Lock()
        self._in_flight = 0
        self._in_flight_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Setup and run-state transitions
    # ------------------------------------------------------------------
    def initialize(self, state, timestamp=0.0, bias=None):
        """
        Set the initial belief of both trackers and publish it.

        Parameters
        ----------
        state : np.ndarray
            Initial joint angles (joint_count,)
        timestamp : float, optional
            Time of the initial state; older observations are dropped
        bias : np.ndarray, optional
            Initial encoder bias estimate
        """
        if self._shutdown.is_set():
            raise LifecycleError("Controller has been shut down")
        state = self.kinematics.check_state(state)

        with self._joint_lock:
            self._bank.reset(state, bias)
            self._tracker.initialize(state)
            self._history.clear()
            self._history.append(timestamp, self._bank.estimate())
            self._last_joint_time = timestamp
            self._last_frame_time = None
            self._last_frame_reference = None
            with self._joint_accept_lock:
                self._last_joint_accepted = timestamp
            with self._frame_lock:
                self._last_frame_accepted = timestamp
                self._pending_frame = None
            self._published = FusedEstimate(timestamp, self._bank.estimate(), self._bank.stale())
            self._initialized = True

        logger.info("Fusion controller initialized at t=%.3f with %d joints",
                    timestamp, self.kinematics.joint_count)

    def run(self):
        """Start accepting observations (stopped -> running)."""
        with self._state_lock:
            if self._shutdown.is_set():
                raise LifecycleError("Cannot run a controller that has been shut down")
            if not self._initialized:
                raise LifecycleError("initialize() must be called before run()")
            if self._run_state is not RunState.STOPPED:
                logger.debug("run() ignored, controller is %s", self._run_state.value)
                return
            self._run_state = RunState.RUNNING

            if not self.synchronous:
                self._workers = [
                    threading.Thread(target=self._joint_worker, name='fusion-joints', daemon=True),
                    threading.Thread(target=self._visual_worker, name='fusion-visual', daemon=True),
                ]
                for worker in self._workers:
                    worker.start()

        logger.info("Fusion controller running (%s)",
                    'synchronous' if self.synchronous else 'threaded')

    def pause(self):
        """Freeze the published estimate (running -> paused)."""
        with self._state_lock:
            self._require_started('pause')
            if self._run_state is RunState.RUNNING:
                self._run_state = RunState.PAUSED
                logger.info("Fusion controller paused")

    def resume(self):
        """Resume processing observations (paused -> running)."""
        with self._state_lock:
            self._require_started('resume')
            if self._run_state is RunState.PAUSED:
                self._run_state = RunState.RUNNING
                logger.info("Fusion controller resumed")

    def toggle_pause(self):
        with self._state_lock:
            self._require_started('toggle_pause')
            if self._run_state is RunState.RUNNING:
                self.pause()
            else:
                self.resume()

    def shutdown(self, timeout=None):
        """
        Stop permanently.

        Further callbacks are rejected, an in-flight visual advance is
        cancelled and worker threads are joined within ``timeout``
        seconds (default: config.shutdown_timeout). Calling shutdown()
        again is a no-op.
        """
        if timeout is None:
            timeout = self.config.shutdown_timeout

        with self._state_lock:
            if self._shutdown.is_set():
                return
            self._shutdown.set()
            self._run_state = RunState.STOPPED
            workers, self._workers = self._workers, []

        self._frame_ready.set()
        deadline = time.monotonic() + timeout
        for worker in workers:
            worker.join(max(0.0, deadline - time.monotonic()))
            if worker.is_alive():
                logger.warning("Worker %s did not stop within %.2f s", worker.name, timeout)

        logger.info("Fusion controller shut down")

    @property
    def run_state(self):
        return self._run_state

    @property
    def is_shutdown(self):
        return self._shutdown.is_set()

    def _require_started(self, operation):
        if self._shutdown.is_set():
            raise LifecycleError(f"Cannot {operation}() after shutdown()")
        if self._run_state is RunState.STOPPED:
            raise LifecycleError(f"Cannot {operation}() before run()")

    def _is_running(self):
        return self._run_state is RunState.RUNNING and not self._shutdown.is_set()

    def _should_cancel(self):
        return not self._is_running()

    # ------------------------------------------------------------------
    # Observation entry points
    # ------------------------------------------------------------------
    def joints_obsrv_callback(self, sample):
        """
        Accept an encoder sample.

        Parameters
        ----------
        sample : EncoderSample
            Raw joint readings

        Returns
        -------
        bool
            True if the sample was accepted for processing
        """
        if not self._admit():
            return False

        positions = getattr(sample, 'positions', None)
        if positions is None or np.shape(positions) != (self.kinematics.joint_count,):
            self._count('dropped_malformed')
            logger.warning("Dropping malformed encoder sample with shape %s",
                           np.shape(positions) if positions is not None else None)
            return False

        with self._joint_accept_lock:
            if sample.timestamp < self._last_joint_accepted:
                self._count('dropped_out_of_order')
                logger.warning("Dropping out-of-order encoder sample t=%.4f (last t=%.4f)",
                               sample.timestamp, self._last_joint_accepted)
                return False
            self._last_joint_accepted = sample.timestamp

            if not self.synchronous:
                self._track_in_flight(1)
                try:
                    self._joint_queue.put_nowait(sample)
                except queue.Full:
                    self._track_in_flight(-1)
                    self._count('dropped_queue_full')
                    logger.warning("Encoder channel full, dropping sample t=%.4f", sample.timestamp)
                    return False
                return True

        self._consume_joints(sample)
        return True

    def image_obsrv_callback(self, frame):
        """
        Accept a depth frame.

        Only the newest pending frame is kept: a frame that is still
        waiting when a newer one arrives is superseded.

        Parameters
        ----------
        frame : DepthFrame
            Observed ranges, stamped with capture time

        Returns
        -------
        bool
            True if the frame was accepted for processing
        """
        if not self._admit():
            return False

        ranges = getattr(frame, 'ranges', None)
        if ranges is None or np.shape(ranges) != self._resolution:
            self._count('dropped_malformed')
            logger.warning("Dropping depth frame with shape %s, expected %s",
                           np.shape(ranges) if ranges is not None else None, self._resolution)
            return False

        with self._frame_lock:
            if frame.timestamp < self._last_frame_accepted:
                self._count('dropped_out_of_order')
                logger.warning("Dropping out-of-order depth frame t=%.4f (last t=%.4f)",
                               frame.timestamp, self._last_frame_accepted)
                return False
            self._last_frame_accepted = frame.timestamp

            if self._pending_frame is not None:
                self._count('frames_superseded')
                logger.debug("Depth frame t=%.4f superseded by t=%.4f",
                             self._pending_frame.timestamp, frame.timestamp)
            self._pending_frame = frame

        if self.synchronous:
            self._drain_frames()
        else:
            self._frame_ready.set()
        return True

    def _admit(self):
        if self._shutdown.is_set():
            self._count('rejected_after_shutdown')
            return False
        if self._run_state is not RunState.RUNNING:
            self._count('dropped_paused' if self._run_state is RunState.PAUSED else 'dropped_stopped')
            return False
        return True

    # ------------------------------------------------------------------
    # Output
    # ------------------------------------------------------------------
    def current_state(self):
        """
        Most recently committed estimate.

        Never blocks on in-flight updates. While paused the same object is
        returned on every call.

        Returns
        -------
        FusedEstimate or None
            None before initialize()
        """
        return self._published

    def visual_estimate(self):
        """Latest estimate of the visual tracker alone."""
        return self._tracker.estimate()

    def last_residual(self):
        """Most recent visual-minus-joint residual fed to the bias filters."""
        with self._joint_lock:
            return self._last_residual.copy()

    def biases(self):
        with self._joint_lock:
            return self._bank.biases()

    def statistics(self):
        """Counters of processed and dropped observations."""
        with self._stats_lock:
            return dict(self._stats)

    def wait_until_idle(self, timeout=1.0):
        """
        Block until all accepted observations are processed.

        Returns
        -------
        bool
            False if work was still pending after ``timeout`` seconds
        """
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            with self._in_flight_lock:
                joints_pending = self._in_flight > 0
            with self._frame_lock:
                frame_pending = self._pending_frame is not None
            if not joints_pending and not frame_pending and not self._visual_lock.locked():
                return True
            time.sleep(0.002)
        return False

    def _publish(self, timestamp, state, stale):
        estimate = FusedEstimate(timestamp, state, stale)
        with self._state_lock:
            if not self._is_running():
                return False
            self._published = estimate
        return True

    def _count(self, key, amount=1):
        with self._stats_lock:
            self._stats[key] += amount

    def _track_in_flight(self, delta):
        with self._in_flight_lock:
            self._in_flight += delta

    # ------------------------------------------------------------------
    # Processing
    # ------------------------------------------------------------------
    def _consume_joints(self, sample):
        with self._joint_lock:
            if not self._is_running():
                self._count('dropped_paused')
                return
            if self._last_joint_time is not None and sample.timestamp < self._last_joint_time:
                self._count('dropped_out_of_order')
                return

            dt = 0.0 if self._last_joint_time is None else sample.timestamp - self._last_joint_time
            estimate = self._bank.advance(dt, sample.positions)
            self._last_joint_time = sample.timestamp
            self._history.append(sample.timestamp, estimate)
            self._count('joint_updates')
            self._publish(sample.timestamp, estimate, self._bank.stale())

    def _drain_frames(self):
        # Only one thread advances the visual tracker at a time; a frame
        # arriving meanwhile waits in the mailbox and is picked up here.
        while True:
            if not self._visual_lock.acquire(blocking=False):
                return
            try:
                while True:
                    with self._frame_lock:
                        frame, self._pending_frame = self._pending_frame, None
                    if frame is None:
                        break
                    self._consume_frame(frame)
            finally:
                self._visual_lock.release()

            with self._frame_lock:
                if self._pending_frame is None:
                    return

    def _consume_frame(self, frame):
        if not self._is_running():
            self._count('dropped_paused')
            return

        continuous = self.kinematics.continuous
        with self._joint_lock:
            reference = self._history.at(frame.timestamp)
            previous = self._last_frame_reference
            last_frame_time = self._last_frame_time

        if last_frame_time is not None and frame.timestamp < last_frame_time:
            self._count('dropped_out_of_order')
            return

        motion = None if previous is None else state_residual(reference, previous, continuous)
        dt = 0.0 if last_frame_time is None else frame.timestamp - last_frame_time

        status = self._tracker.advance(frame, motion=motion, dt=dt, cancel=self._should_cancel)
        if status is AdvanceStatus.CANCELLED:
            self._count('visual_cancelled')
            return

        self._last_frame_time = frame.timestamp
        self._last_frame_reference = reference
        if status is AdvanceStatus.NO_EVIDENCE:
            self._count('frames_unusable')
            return

        visual = self._tracker.estimate()
        with self._joint_lock:
            if not self._is_running():
                self._count('visual_discarded')
                return

            reference = self._history.at(frame.timestamp)
            residual = state_residual(visual, reference, continuous)
            before = self._bank.estimate()
            self._bank.correct_biases(residual, self._correction_sigmas)
            after = self._bank.estimate()

            # Later history entries include this correction; shift the
            # stored reference so the next frame's motion does not.
            self._last_frame_reference = reference + state_residual(after, before, continuous)
            self._last_residual = residual
            self._count('visual_updates')

            timestamp = self._last_joint_time if self._last_joint_time is not None else frame.timestamp
            self._publish(timestamp, after, self._bank.stale())

    def _joint_worker(self):
        while not self._shutdown.is_set():
            try:
                sample = self._joint_queue.get(timeout=0.05)
            except queue.Empty:
                continue
            try:
                self._consume_joints(sample)
            finally:
                self._track_in_flight(-1)

    def _visual_worker(self):
        while not self._shutdown.is_set():
            if self._frame_ready.wait(timeout=0.05):
                self._frame_ready.clear()
                if self._shutdown.is_set():
                    break
                self._drain_frames()
