"""Trajectory smoothing.

This module implements an adaptive Rauch–Tung–Striebel smoother for
GPS trajectories.  The state of each sample is a constant-velocity
model ``[lat, lon, v_lat, v_lon]`` with a 4x4 covariance.  A forward
Kalman pass filters the samples in time order while estimating the
noise level online with a variational-Bayes (alpha, beta) pair; a
backward pass then blends every filtered state with its smoothed
successor.

After smoothing, runs of samples that the detector marked as drift are
pulled further toward the straight line between the samples bracketing
the run.

Both passes walk an index-addressed list of `FilterState` records; the
forward pass must complete before the backward pass starts.
"""

from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import numpy as np

from ..common.trajectory import Sample, SampleStatus, copy_samples
from ..utils.kinematics import elapsed_seconds, update_motion
from ..utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class FilterState:
    """Filter estimate for one sample."""

    x: np.ndarray
    """State vector [lat, lon, v_lat, v_lon] (degrees, degrees/s)."""

    P: np.ndarray
    """4x4 state covariance."""

    time: float
    """Seconds since the first sample."""


def transition(dt: float) -> np.ndarray:
    """Constant-velocity transition matrix for a step of `dt` seconds."""
    F = np.eye(4)
    F[0, 2] = dt
    F[1, 3] = dt
    return F


def invert_2x2(M: np.ndarray, tol: float) -> Optional[np.ndarray]:
    """Invert a 2x2 matrix by its determinant, or None if |det| < tol."""
    det = M[0, 0] * M[1, 1] - M[0, 1] * M[1, 0]
    if abs(det) < tol:
        return None
    return np.array([
        [M[1, 1], -M[0, 1]],
        [-M[1, 0], M[0, 0]],
    ]) / det


@dataclass
class AdaptiveRTSSmoother:
    """Forward-backward Kalman smoother with online noise estimation."""

    initial_position_variance: float = 1e-4
    initial_velocity_variance: float = 1e-3
    vb_alpha: float = 1.0
    """Initial shape of the noise estimate."""

    vb_beta: float = 10.0
    """Initial rate of the noise estimate."""

    singular_tol: float = 1e-8
    """Determinant magnitude below which a 2x2 matrix counts as singular."""

    move_tolerance: float = 1e-9
    """Samples moved further than this (degrees) are tagged as corrected."""

    drift_pull: float = 0.7
    """Weight of the reference line when correcting drift runs."""

    min_drift_run: int = 3

    name: str = "adaptive_rts"

    def smooth(self, samples: Sequence[Sample]) -> List[Sample]:
        """Smooth a trajectory.

        Parameters
        ----------
        samples : sequence of Sample
            Trajectory in time order.  Samples with status ``drift``
            take part in the drift-run correction.

        Returns
        -------
        list of Sample
            New samples; the input is left untouched.  Trajectories
            shorter than two samples are returned as a plain copy.
        """
        if len(samples) < 2:
            return list(samples)

        dts = self._intervals(samples)
        forward, q_used = self._forward_pass(samples, dts)
        smoothed = self._backward_pass(forward, q_used, dts)
        result = self._apply_states(samples, smoothed)
        self._correct_drift_runs(samples, result)
        return result

    @staticmethod
    def _intervals(samples: Sequence[Sample]) -> List[float]:
        """Step lengths in seconds; 1 s where timestamps are missing or not increasing."""
        dts = [0.0]
        for a, b in zip(samples, samples[1:]):
            dt = elapsed_seconds(a, b)
            dts.append(dt if dt is not None and dt > 0 else 1.0)
        return dts

    def _initial_state(self, samples: Sequence[Sample], dt: float) -> FilterState:
        first, second = samples[0], samples[1]
        v_lat = (second.latitude - first.latitude) / dt
        v_lon = (second.longitude - first.longitude) / dt
        P = np.diag([
            self.initial_position_variance,
            self.initial_position_variance,
            self.initial_velocity_variance,
            self.initial_velocity_variance,
        ])
        return FilterState(
            x=np.array([first.latitude, first.longitude, v_lat, v_lon]),
            P=P,
            time=0.0,
        )

    @staticmethod
    def predict(state: FilterState, dt: float, q: float) -> FilterState:
        """One constant-velocity step with process noise `q` per second."""
        F = transition(dt)
        return FilterState(
            x=F @ state.x,
            P=F @ state.P @ F.T + np.eye(4) * (q * dt),
            time=state.time + dt,
        )

    def update(self, predicted: FilterState, z: np.ndarray, r: float) -> FilterState:
        """Correct a predicted state with a position measurement."""
        innovation = z - predicted.x[:2]
        S = predicted.P[:2, :2] + np.eye(2) * r
        S_inv = invert_2x2(S, self.singular_tol)
        if S_inv is None:
            logger.debug("Singular innovation covariance at t=%.1f, keeping prediction",
                         predicted.time)
            return predicted

        K = predicted.P[:, :2] @ S_inv
        return FilterState(
            x=predicted.x + K @ innovation,
            P=predicted.P - K @ predicted.P[:2, :],
            time=predicted.time,
        )

    def _forward_pass(self, samples: Sequence[Sample], dts: List[float]) -> Tuple[List[FilterState], List[float]]:
        n = len(samples)
        states = [self._initial_state(samples, dts[1])]
        q_used = [0.0] * n
        alpha, beta = self.vb_alpha, self.vb_beta

        for i in range(1, n):
            q = alpha / beta
            predicted = self.predict(states[i - 1], dts[i], q)

            z = np.array([samples[i].latitude, samples[i].longitude])
            innovation = z - predicted.x[:2]
            alpha += 0.5
            beta += 0.5 * float(innovation @ innovation)
            r = alpha / beta

            states.append(self.update(predicted, z, r))
            q_used[i] = q

        return states, q_used

    def smoothing_gain(self, P: np.ndarray, P_pred: np.ndarray, dt: float) -> np.ndarray:
        """Position block of P Fᵀ P_pred⁻¹; zero when P_pred is near singular."""
        cross = P[:2, :2] + dt * P[:2, 2:4]
        inv = invert_2x2(P_pred[:2, :2], self.singular_tol)
        if inv is None:
            return np.zeros((2, 2))
        return cross @ inv

    def _backward_pass(self, forward: List[FilterState], q_used: List[float], dts: List[float]) -> List[FilterState]:
        n = len(forward)
        smoothed: List[Optional[FilterState]] = [None] * n
        smoothed[-1] = forward[-1]

        for i in range(n - 2, -1, -1):
            dt = dts[i + 1]
            predicted = self.predict(forward[i], dt, q_used[i + 1])
            C = self.smoothing_gain(forward[i].P, predicted.P, dt)

            diff = smoothed[i + 1].x - predicted.x
            x = forward[i].x.copy()
            x[:2] += C @ diff[:2]
            x[2:] += C @ diff[2:]
            # Covariance is carried over from the forward pass unchanged.
            smoothed[i] = FilterState(x=x, P=forward[i].P.copy(), time=forward[i].time)

        return smoothed

    def _apply_states(self, samples: Sequence[Sample], states: List[FilterState]) -> List[Sample]:
        result = copy_samples(samples)
        moved = 0
        for i, (sample, state) in enumerate(zip(result, states)):
            lat, lon = float(state.x[0]), float(state.x[1])
            if (abs(sample.latitude - lat) > self.move_tolerance
                    or abs(sample.longitude - lon) > self.move_tolerance):
                if not sample.was_moved:
                    sample.original_latitude = sample.latitude
                    sample.original_longitude = sample.longitude
                sample.corrected_by = self.name
                if sample.status == SampleStatus.DRIFT:
                    sample.status = SampleStatus.NORMAL
                moved += 1
            sample.latitude = lat
            sample.longitude = lon
            if i > 0:
                update_motion(result[i - 1], sample)
        logger.debug("Smoother moved %d of %d samples", moved, len(result))
        return result

    def _drift_runs(self, samples: Sequence[Sample]) -> List[Tuple[int, int]]:
        runs = []
        i = 0
        n = len(samples)
        while i < n:
            if samples[i].status != SampleStatus.DRIFT:
                i += 1
                continue
            start = i
            while i < n and samples[i].status == SampleStatus.DRIFT:
                i += 1
            if i - start >= self.min_drift_run:
                runs.append((start, i - 1))
        return runs

    def _correct_drift_runs(self, original: Sequence[Sample], result: List[Sample]) -> None:
        """Pull smoothed drift runs toward the line between their neighbours."""
        n = len(result)
        for start, end in self._drift_runs(original):
            before = result[start - 1] if start > 0 else result[start]
            after = result[end + 1] if end < n - 1 else result[end]
            span = end - start + 2
            for i in range(start, end + 1):
                if i == 0 or i == n - 1 or not result[i].was_moved:
                    continue
                t = (i - start + 1) / span
                ref_lat = before.latitude + t * (after.latitude - before.latitude)
                ref_lon = before.longitude + t * (after.longitude - before.longitude)
                sample = result[i]
                sample.latitude = sample.latitude * (1 - self.drift_pull) + ref_lat * self.drift_pull
                sample.longitude = sample.longitude * (1 - self.drift_pull) + ref_lon * self.drift_pull
            for i in range(max(start, 1), min(end + 2, n)):
                update_motion(result[i - 1], result[i])
