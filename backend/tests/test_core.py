"""
Unit Tests for Core Pose Post-Processing Components
"""

import math

import pytest


class TestGeometry:

    def test_angle_at_turning_direction(self):
        """angle_at measures the turn from b->a to b->c in [0, 360)"""
        from core.geometry import angle_at

        assert angle_at((1, 0), (0, 0), (0, 1)) == pytest.approx(90.0)
        assert angle_at((0, 1), (0, 0), (1, 0)) == pytest.approx(270.0)

    def test_joint_angle_is_unsigned(self):
        """joint_angle folds into [0, 180]"""
        from core.geometry import joint_angle

        assert joint_angle((0, 1), (0, 0), (1, 0)) == pytest.approx(90.0)
        assert joint_angle((-1, 0), (0, 0), (1, 0)) == pytest.approx(180.0)

    def test_degenerate_geometry_returns_none(self):
        """Missing, coincident or non-finite points never raise"""
        from core.geometry import angle_at, distance, inclination, joint_angle

        assert angle_at(None, (0, 0), (1, 0)) is None
        assert angle_at((0, 0), (0, 0), (1, 0)) is None
        assert joint_angle((float("nan"), 0), (0, 0), (1, 0)) is None
        assert angle_at((float("inf"), 0), (0, 0), (1, 0)) is None
        assert angle_at((1, 0), (0, float("-inf")), (0, 1)) is None
        assert distance((0, 0), (float("inf"), 1)) is None
        assert distance((0, 0), None) is None
        assert inclination((5, 5), (5, 5)) is None

    @pytest.mark.parametrize("a,b,c", [
        ((3, 7), (-2, 1.5), (10, -4)),
        ((120, 80), (100, 100), (90, 160)),
        ((0.5, 0.25), (2, 3), (-1, 4)),
    ])
    def test_angle_at_properties(self, a, b, c):
        """Translation leaves the angle alone; reversing the rays complements it"""
        from core.geometry import angle_at

        angle = angle_at(a, b, c)
        dx, dy = 123.4, -56.7
        shifted = angle_at((a[0] + dx, a[1] + dy), (b[0] + dx, b[1] + dy), (c[0] + dx, c[1] + dy))

        assert 0 <= angle < 360
        assert shifted == pytest.approx(angle)
        assert angle_at(c, b, a) == pytest.approx(360 - angle)

    def test_distance_and_midpoint(self):
        """Euclidean distance and midpoint"""
        from core.geometry import distance, midpoint

        assert distance((0, 0), (3, 4)) == 5.0
        assert midpoint((0, 0), (10, 4)) == (5.0, 2.0)

    def test_inclination_and_tilt(self):
        """Inclination is against vertical, tilt against horizontal"""
        from core.geometry import inclination, line_tilt

        assert inclination((0, 0), (0, 10)) == 0.0
        assert inclination((0, 0), (10, 10)) == pytest.approx(45.0)
        assert line_tilt((0, 0), (10, 0)) == 0.0
        assert line_tilt((0, 0), (10, 10)) == pytest.approx(45.0)

    def test_accepts_keypoints(self, standing_pose):
        """Keypoint objects work like tuples"""
        from core.geometry import distance
        from core.keypoints import BodyLandmark as L

        assert distance(standing_pose[L.LEFT_SHOULDER], standing_pose[L.RIGHT_SHOULDER]) == 100.0


class TestPoseModel:

    def test_requires_seventeen_keypoints(self):
        """A pose with the wrong number of slots is rejected"""
        from core.keypoints import Pose
        from exceptions import InvalidKeypointData

        with pytest.raises(InvalidKeypointData):
            Pose(tuple([None] * 16))

    def test_from_dicts_by_name(self):
        """Named keypoints land in their landmark slot regardless of order"""
        from core.keypoints import BodyLandmark, Pose

        pose = Pose.from_dicts([
            {"name": "right_wrist", "x": 10, "y": 20, "score": 0.8},
            {"name": "nose", "x": 1, "y": 2, "score": 0.6},
        ])

        assert pose[BodyLandmark.RIGHT_WRIST].x == 10.0
        assert pose[BodyLandmark.NOSE].score == 0.6
        assert pose[BodyLandmark.LEFT_WRIST] is None
        assert pose.score == pytest.approx(0.7)

    def test_from_dicts_positional(self):
        """Unnamed keypoints are taken in landmark order"""
        from core.keypoints import BodyLandmark, Pose

        items = [{"x": i, "y": i, "score": 0.5} for i in range(17)]
        pose = Pose.from_dicts(items)

        assert pose[BodyLandmark.RIGHT_ANKLE].x == 16.0

    def test_from_dicts_rejects_bad_input(self):
        """Unknown names and malformed entries raise InvalidKeypointData"""
        from core.keypoints import Pose
        from exceptions import InvalidKeypointData

        with pytest.raises(InvalidKeypointData):
            Pose.from_dicts([{"name": "left_racket", "x": 0, "y": 0}])
        with pytest.raises(InvalidKeypointData):
            Pose.from_dicts([{"name": "nose", "y": 0}])

    @pytest.mark.parametrize("x,y", [
        (float("nan"), 10.0),
        (10.0, float("inf")),
        (float("-inf"), float("nan")),
    ])
    def test_non_finite_positions_rejected(self, x, y):
        """NaN and infinite coordinates never make it into a pose"""
        from core.keypoints import BodyLandmark, Keypoint, Pose
        from exceptions import InvalidKeypointData

        with pytest.raises(InvalidKeypointData) as exc_info:
            Pose.from_dicts([{"name": "right_wrist", "x": x, "y": y, "score": 0.9}])
        assert exc_info.value.details == {"landmark": "right_wrist"}

        with pytest.raises(InvalidKeypointData):
            Keypoint(BodyLandmark.NOSE, x, y, 0.9)

    def test_stroke_selection(self):
        """auto maps to None; unknown strokes are a validation error"""
        from core.keypoints import StrokeType, parse_stroke_selection
        from exceptions import ValidationError

        assert parse_stroke_selection("auto") is None
        assert parse_stroke_selection("serve") == StrokeType.SERVE
        with pytest.raises(ValidationError):
            parse_stroke_selection("smash")


class TestKeypointGate:

    def test_validity_is_strictly_above_threshold(self, make_pose):
        """A score equal to the threshold is not valid"""
        from core.confidence_gating import KeypointGate
        from core.keypoints import BodyLandmark as L

        pose = make_pose({"nose": (0, 0, 0.15), "left_eye": (0, 0, 0.16)})
        gate = KeypointGate()

        assert not gate.is_valid(pose[L.NOSE])
        assert gate.is_valid(pose[L.LEFT_EYE])
        assert not gate.is_valid(None)

    def test_full_pose_has_coverage(self, standing_pose):
        """A fully visible subject passes for every stroke"""
        from core.confidence_gating import KeypointGate, required_keypoints
        from core.keypoints import CameraViewpoint, StrokeType

        gate = KeypointGate()
        for stroke in StrokeType:
            for viewpoint in (CameraViewpoint.REAR_ELEVATED, CameraViewpoint.SIDE, CameraViewpoint.FRONT):
                assert gate.has_required_coverage(standing_pose, required_keypoints(stroke, viewpoint))

    def test_core_keypoints_rescue_coverage(self, make_pose, standing_points):
        """Under half the required set still passes when enough arm keypoints are valid"""
        from core.confidence_gating import KeypointGate, required_keypoints
        from core.keypoints import CameraViewpoint, StrokeType

        points = {k: v for k, v in standing_points.items()
                  if k not in ("right_wrist", "right_hip", "right_knee", "right_ankle")}
        pose = make_pose(points)
        required = required_keypoints(StrokeType.FOREHAND, CameraViewpoint.REAR_ELEVATED)

        # 2 of 6 required valid, but 2 of 3 required core keypoints
        assert KeypointGate().has_required_coverage(pose, required)

    def test_insufficient_coverage_names_missing_parts(self, make_pose, standing_points):
        """Missing right arm and leg fails forehand coverage"""
        from core.confidence_gating import KeypointGate, required_keypoints
        from core.keypoints import CameraViewpoint, StrokeType

        points = {k: v for k, v in standing_points.items()
                  if k not in ("right_elbow", "right_wrist", "right_knee", "right_ankle")}
        pose = make_pose(points)
        required = required_keypoints(StrokeType.FOREHAND, CameraViewpoint.REAR_ELEVATED)
        gate = KeypointGate()

        assert not gate.has_required_coverage(pose, required)
        status = gate.detection_status(pose, required)
        assert status.missing_parts == ["Right Elbow", "Right Wrist", "Right Knee", "Right Ankle"]
        assert status.detected_ratio == pytest.approx(2 / 6)

    def test_front_uses_default_table(self):
        """Viewpoints without their own table fall back to the rear-elevated one"""
        from core.confidence_gating import required_keypoints
        from core.keypoints import CameraViewpoint, StrokeType

        for stroke in StrokeType:
            assert required_keypoints(stroke, CameraViewpoint.FRONT) == \
                required_keypoints(stroke, CameraViewpoint.REAR_ELEVATED)


class TestExponentialFilter:

    def test_first_frame_passes_through(self, standing_pose):
        """The first frame seeds the filter unchanged"""
        from core.temporal_filter import ExponentialKeypointFilter

        f = ExponentialKeypointFilter()
        assert f.filter(standing_pose) is standing_pose
        assert f.has_state

    def test_blends_toward_current(self, make_pose):
        """Smoothed position moves 80% of the way to the new observation"""
        from core.keypoints import BodyLandmark as L
        from core.temporal_filter import ExponentialKeypointFilter

        f = ExponentialKeypointFilter()
        f.filter(make_pose({"nose": (100, 100, 0.9)}))
        result = f.filter(make_pose({"nose": (110, 90, 0.5)}))

        assert result[L.NOSE].x == pytest.approx(108.0)
        assert result[L.NOSE].y == pytest.approx(92.0)
        # Carried-forward score decays but never drops below the current one
        assert result[L.NOSE].score == pytest.approx(0.855)

    def test_steady_input_is_exact(self, standing_pose):
        """Identical frames produce identical output"""
        from core.temporal_filter import ExponentialKeypointFilter

        f = ExponentialKeypointFilter()
        first = f.filter(standing_pose)
        second = f.filter(standing_pose)

        assert second.keypoints == first.keypoints

    def test_low_score_passes_raw(self, make_pose):
        """Keypoints under the score floor are not blended"""
        from core.keypoints import BodyLandmark as L
        from core.temporal_filter import ExponentialKeypointFilter

        f = ExponentialKeypointFilter()
        f.filter(make_pose({"nose": (100, 100, 0.9)}))
        result = f.filter(make_pose({"nose": (200, 200, 0.05)}))

        assert result[L.NOSE].x == 200.0

    def test_reset(self, standing_pose, make_pose):
        """After reset the next frame passes through again"""
        from core.temporal_filter import ExponentialKeypointFilter

        f = ExponentialKeypointFilter()
        f.filter(standing_pose)
        f.reset()
        moved = make_pose({"nose": (0, 0)})
        assert f.filter(moved) is moved


class TestKalmanFilter:

    def test_first_measurement_seeds_estimate(self):
        """No bias toward zero on the first update"""
        from core.temporal_filter import ScalarKalmanFilter

        f = ScalarKalmanFilter()
        assert f.update(250.0) == 250.0

    def test_uncertainty_never_grows(self):
        """With constant noise the uncertainty only shrinks, whatever is measured"""
        from core.temporal_filter import ScalarKalmanFilter

        f = ScalarKalmanFilter(process_noise=0.01, measurement_noise=0.1, initial_uncertainty=1.0)
        previous = f.uncertainty
        for i in range(50):
            f.update(100 + 40 * math.sin(i))
            assert f.uncertainty <= previous + 1e-12
            previous = f.uncertainty

        assert f.uncertainty < 1.0

    def test_converges_on_noisy_signal(self):
        """Alternating noise around 100 settles near 100"""
        from core.temporal_filter import ScalarKalmanFilter

        f = ScalarKalmanFilter(process_noise=0.01, measurement_noise=0.1)
        estimates = [f.update(100 + (5 if i % 2 else -5)) for i in range(40)]

        assert abs(estimates[-1] - 100) < 2
        assert abs(estimates[-1] - estimates[-2]) < 10, "Output should move less than the input"

    def test_measurement_noise_tiers(self):
        """Lower confidence means larger measurement noise"""
        from core.temporal_filter import KalmanKeypointSmoother

        smoother = KalmanKeypointSmoother()
        assert smoother.measurement_noise_for(0.2) == 0.5
        assert smoother.measurement_noise_for(0.5) == 0.3
        assert smoother.measurement_noise_for(0.9) == 0.1

    def test_unreliable_keypoints_bypass(self, make_pose):
        """Keypoints under the minimum score are returned raw"""
        from core.keypoints import BodyLandmark as L
        from core.temporal_filter import KalmanKeypointSmoother

        smoother = KalmanKeypointSmoother()
        smoother.smooth(make_pose({"nose": (100, 100, 0.9)}))
        result = smoother.smooth(make_pose({"nose": (300, 300, 0.05)}))

        assert result[L.NOSE].x == 300.0

    def test_reset_reseeds(self, make_pose):
        """After reset the next measurement seeds every filter again"""
        from core.keypoints import BodyLandmark as L
        from core.temporal_filter import KalmanKeypointSmoother

        smoother = KalmanKeypointSmoother()
        smoother.smooth(make_pose({"nose": (100, 100)}))
        smoother.reset()
        result = smoother.smooth(make_pose({"nose": (400, 50)}))

        assert result[L.NOSE].x == 400.0
        assert result[L.NOSE].y == 50.0


class TestKeypointEstimator:

    def test_mirrors_missing_shoulder(self, make_pose):
        """A single missing shoulder is mirrored 100px from the other"""
        from core.keypoint_estimator import KeypointEstimator
        from core.keypoints import BodyLandmark as L

        pose = make_pose({"left_shoulder": (250, 200)})
        result = KeypointEstimator().estimate(pose)

        rs = result[L.RIGHT_SHOULDER]
        assert (rs.x, rs.y) == (350.0, 200.0)
        assert rs.estimated
        assert rs.score == pytest.approx(0.72)

    def test_elbow_between_shoulder_and_wrist(self, standing_points, make_pose):
        """A missing elbow with a visible wrist is placed at the midpoint"""
        from core.keypoint_estimator import KeypointEstimator
        from core.keypoints import BodyLandmark as L

        del standing_points["right_elbow"]
        result = KeypointEstimator().estimate(make_pose(standing_points))

        re = result[L.RIGHT_ELBOW]
        assert (re.x, re.y) == (362.5, 285.0)
        assert re.score == pytest.approx(0.81)

    def test_elbow_dropped_below_shoulder(self, standing_points, make_pose):
        """Without a wrist the elbow hangs 60px below the shoulder"""
        from core.keypoint_estimator import KeypointEstimator
        from core.keypoints import BodyLandmark as L

        del standing_points["right_elbow"]
        del standing_points["right_wrist"]
        result = KeypointEstimator().estimate(make_pose(standing_points))

        re = result[L.RIGHT_ELBOW]
        assert (re.x, re.y) == (350.0, 260.0)
        assert re.score == pytest.approx(0.63)
        assert result[L.RIGHT_WRIST] is None

    def test_hips_from_torso(self, standing_points, make_pose):
        """Hips sit as far below the shoulders as the nose sits above them"""
        from core.keypoint_estimator import KeypointEstimator
        from core.keypoints import BodyLandmark as L

        del standing_points["left_hip"]
        del standing_points["right_hip"]
        result = KeypointEstimator().estimate(make_pose(standing_points))

        assert (result[L.LEFT_HIP].x, result[L.LEFT_HIP].y) == (250.0, 300.0)
        assert (result[L.RIGHT_HIP].x, result[L.RIGHT_HIP].y) == (350.0, 300.0)

    def test_estimates_score_lower_than_sources(self, make_pose):
        """Estimated keypoints never out-score what they were derived from"""
        from core.keypoint_estimator import KeypointEstimator

        pose = make_pose({"nose": (300, 100), "left_shoulder": (250, 200)})
        result = KeypointEstimator().estimate(pose)

        for kp in result:
            if kp is not None and kp.estimated:
                assert kp.score < 0.9

    def test_complete_pose_unchanged(self, standing_pose):
        """Nothing to estimate returns the input pose"""
        from core.keypoint_estimator import KeypointEstimator

        assert KeypointEstimator().estimate(standing_pose) is standing_pose


class TestViewpoint:

    def test_face_hidden_is_rear(self, standing_points, make_pose):
        """Faces turned away mean a camera behind the player"""
        from core.keypoints import CameraViewpoint
        from core.viewpoint import ViewpointClassifier

        for name in ("nose", "left_eye", "right_eye"):
            x, y = standing_points[name]
            standing_points[name] = (x, y, 0.1)
        result = ViewpointClassifier().classify(make_pose(standing_points))

        assert result.viewpoint == CameraViewpoint.REAR_ELEVATED
        assert result.reason == "face_hidden"

    def test_visible_face_square_torso_is_front(self, standing_points, make_pose):
        """Visible face with equal shoulder and hip widths means front"""
        from core.keypoints import CameraViewpoint
        from core.viewpoint import ViewpointClassifier

        standing_points["left_hip"] = (250, 400)
        standing_points["right_hip"] = (350, 400)
        result = ViewpointClassifier().classify(make_pose(standing_points))

        assert result.viewpoint == CameraViewpoint.FRONT
        assert result.width_ratio == pytest.approx(1.0)

    def test_overlapping_shoulders_is_side(self, standing_points, make_pose):
        """Shoulders closer than 30px horizontally means side"""
        from core.keypoints import CameraViewpoint
        from core.viewpoint import ViewpointClassifier

        standing_points["left_shoulder"] = (295, 200)
        standing_points["right_shoulder"] = (315, 200)
        result = ViewpointClassifier().classify(make_pose(standing_points))

        assert result.viewpoint == CameraViewpoint.SIDE
        assert result.shoulder_separation == 20.0

    def test_missing_widths_default_rear(self, standing_points, make_pose):
        """Without hips the classifier falls back to rear-elevated"""
        from core.keypoints import CameraViewpoint
        from core.viewpoint import ViewpointClassifier

        del standing_points["left_hip"]
        result = ViewpointClassifier().classify(make_pose(standing_points))

        assert result.viewpoint == CameraViewpoint.REAR_ELEVATED
        assert result.reason == "widths_unavailable"

    def test_rear_elevated_correction(self, standing_pose):
        """Points are raised relative to the ankles and shoulders widened"""
        from core.keypoints import BodyLandmark as L
        from core.viewpoint import ViewpointCorrector

        result = ViewpointCorrector().correct_rear_elevated(standing_pose)

        assert result[L.NOSE].y == pytest.approx(100 - 0.15 * 500)
        assert result[L.RIGHT_ANKLE].y == 600.0
        assert result[L.LEFT_SHOULDER].x == 240.0
        assert result[L.RIGHT_SHOULDER].x == 360.0
        assert result[L.LEFT_SHOULDER].y == pytest.approx(140.0)
        # Input untouched
        assert standing_pose[L.NOSE].y == 100.0

    def test_rear_correction_without_ankles(self, standing_points, make_pose):
        """No ankles means the pose is left as captured"""
        from core.keypoints import BodyLandmark as L
        from core.viewpoint import ViewpointCorrector

        del standing_points["left_ankle"]
        del standing_points["right_ankle"]
        result = ViewpointCorrector().correct_rear_elevated(make_pose(standing_points))

        assert result[L.NOSE].y == 100.0
        assert result[L.LEFT_SHOULDER].x == 250.0
        assert result[L.RIGHT_SHOULDER].x == 350.0

    def test_side_correction_spreads_torso(self, standing_points, make_pose):
        """Shoulders and hips move 10% further from the shoulder midpoint"""
        from core.keypoints import BodyLandmark as L
        from core.viewpoint import ViewpointCorrector

        standing_points["left_shoulder"] = (295, 200)
        standing_points["right_shoulder"] = (315, 200)
        result = ViewpointCorrector().correct_side(make_pose(standing_points))

        assert result[L.LEFT_SHOULDER].x == pytest.approx(294.0)
        assert result[L.RIGHT_SHOULDER].x == pytest.approx(316.0)
        assert result[L.LEFT_HIP].x == pytest.approx(266.5)
        assert result[L.NOSE].x == 300.0

    def test_front_correction_is_a_copy(self, standing_pose):
        """Front view returns an equal but separate pose"""
        from core.keypoints import CameraViewpoint
        from core.viewpoint import ViewpointCorrector

        result = ViewpointCorrector().correct(standing_pose, CameraViewpoint.FRONT)
        assert result == standing_pose
        assert result is not standing_pose


class TestMotionHistory:

    def _pose_with_wrist(self, make_pose, standing_points, x, y):
        points = dict(standing_points)
        points["right_wrist"] = (x, y)
        return make_pose(points)

    def test_stores_confident_important_landmarks(self, make_pose):
        """Only important landmarks with score >= 0.2 are kept"""
        from core.keypoints import BodyLandmark as L
        from core.motion_history import MotionHistory

        history = MotionHistory()
        entry = history.push(make_pose({
            "right_wrist": (10, 10, 0.2),
            "left_wrist": (10, 10, 0.1),
            "right_ankle": (10, 10, 0.9),
        }), 0.0)

        assert set(entry.keypoints) == {L.RIGHT_WRIST}

    def test_velocity(self, make_pose, standing_points):
        """Speed in px/s and direction from consecutive entries"""
        from core.keypoints import BodyLandmark as L
        from core.motion_history import MotionHistory

        history = MotionHistory()
        history.push(self._pose_with_wrist(make_pose, standing_points, 375, 370), 0.0)
        entry = history.push(self._pose_with_wrist(make_pose, standing_points, 375, 380), 0.1)

        velocity = entry.velocities[L.RIGHT_WRIST]
        assert velocity.speed == pytest.approx(100.0)
        assert velocity.direction == pytest.approx(math.pi / 2)

    def test_no_velocity_for_tiny_interval(self, standing_pose):
        """Entries closer than 16ms get no velocities"""
        from core.motion_history import MotionHistory

        history = MotionHistory()
        history.push(standing_pose, 0.0)
        entry = history.push(standing_pose, 0.01)

        assert entry.velocities == {}

    def test_capacity_evicts_oldest(self, standing_pose):
        """The buffer never exceeds its capacity"""
        from core.motion_history import MotionHistory

        history = MotionHistory(capacity=3)
        for i in range(5):
            history.push(standing_pose, i * 0.1)

        assert len(history) == 3
        assert history.recent(3)[0].timestamp == pytest.approx(0.2)

    def test_derived_angles(self, standing_pose):
        """Elbow angles and shoulder alignment are stored per entry"""
        from core.motion_history import MotionHistory

        entry = MotionHistory().push(standing_pose, 0.0)

        assert entry.angles["right_elbow"] is not None
        assert entry.angles["shoulder_alignment"] == 0.0
