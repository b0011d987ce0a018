import cv2
import numpy as np
import pytest

from mvchain.ransac.errors import DegenerateInputError, InsufficientCorrespondencesError
from mvchain.ransac.linear import enforce_rank2, solve
from mvchain.ransac.residuals import apply_T, epipolar_residuals, sampson_error
from mvchain.ransac.types import GeometricModel, ModelKind

from conftest import TRUE_MODELS, random_points, same_up_to_sign, stereo_pair


class TestExactRecovery:

    def test_recovers_transform(self, transform_case):
        kind, T, x1, x2 = transform_case
        model = solve(kind, x1, x2)

        assert isinstance(model, GeometricModel)
        assert model.kind is kind
        np.testing.assert_allclose(model.matrix, T, atol=1e-8)

        dist = np.linalg.norm(model.apply(x1) - x2, axis=1)
        assert dist.max() < 1e-8

    def test_minimal_sample_is_exact(self, transform_case):
        kind, T, x1, x2 = transform_case
        m = kind.min_samples
        model = solve(kind, x1[:m], x2[:m])
        np.testing.assert_allclose(model.matrix, T, atol=1e-8)

    def test_transforms_keep_their_structure(self, rng):
        x1 = random_points(rng, 20)
        x2 = apply_T(TRUE_MODELS[ModelKind.HOMOGRAPHY], x1)

        for kind in (ModelKind.EUCLIDEAN, ModelKind.SIMILARITY, ModelKind.AFFINE):
            M = solve(kind, x1, x2).matrix
            np.testing.assert_allclose(M[2], [0.0, 0.0, 1.0], atol=1e-12)

        E = solve(ModelKind.EUCLIDEAN, x1, x2).matrix
        np.testing.assert_allclose(E[:2, :2] @ E[:2, :2].T, np.eye(2), atol=1e-12)
        assert np.linalg.det(E[:2, :2]) == pytest.approx(1.0)

        S = solve(ModelKind.SIMILARITY, x1, x2).matrix
        assert S[0, 0] == pytest.approx(S[1, 1])
        assert S[0, 1] == pytest.approx(-S[1, 0])

    def test_deterministic_and_inputs_untouched(self, transform_case):
        kind, _, x1, x2 = transform_case
        x1_before, x2_before = x1.copy(), x2.copy()
        a = solve(kind, x1, x2).matrix
        b = solve(kind, x1, x2).matrix
        np.testing.assert_array_equal(a, b)
        np.testing.assert_array_equal(x1, x1_before)
        np.testing.assert_array_equal(x2, x2_before)

    def test_accepts_kind_names(self, rng):
        x1 = random_points(rng, 5)
        x2 = apply_T(TRUE_MODELS[ModelKind.AFFINE], x1)
        assert solve("affine", x1, x2).kind is ModelKind.AFFINE

    def test_model_matrix_is_read_only(self, transform_case):
        kind, _, x1, x2 = transform_case
        model = solve(kind, x1, x2)
        with pytest.raises(ValueError):
            model.matrix[0, 0] = 0.0


class TestOpenCVAgreement:

    def test_homography_matches_find_homography(self, rng):
        x1 = random_points(rng, 12)
        x2 = apply_T(TRUE_MODELS[ModelKind.HOMOGRAPHY], x1)

        H_cv, _ = cv2.findHomography(x1.astype(np.float32), x2.astype(np.float32), 0)
        H = solve(ModelKind.HOMOGRAPHY, x1, x2).matrix
        np.testing.assert_allclose(H, H_cv / H_cv[2, 2], rtol=1e-3, atol=1e-6)

    def test_affine_matches_get_affine_transform(self, rng):
        x1 = random_points(rng, 3)
        x2 = apply_T(TRUE_MODELS[ModelKind.AFFINE], x1)

        A_cv = cv2.getAffineTransform(x1.astype(np.float32), x2.astype(np.float32))
        A = solve(ModelKind.AFFINE, x1, x2).matrix
        np.testing.assert_allclose(A[:2], A_cv, atol=1e-3)


class TestFundamental:

    def test_translation_grid_scenario(self):
        x1 = np.array(
            [[0, 0], [0, 1], [0, 2], [1, 0], [1, 1], [1, 2], [2, 0], [2, 1]],
            dtype=np.float64,
        )
        x2 = x1.copy()
        x2[:, 1] += 1.0

        model = solve(ModelKind.FUNDAMENTAL, x1, x2)
        assert model.kind is ModelKind.FUNDAMENTAL

        residuals = epipolar_residuals(model.matrix, x1, x2)
        np.testing.assert_allclose(residuals, np.zeros(8), atol=1e-8)

    def test_recovers_camera_pair(self, rng):
        x1, x2, F_true = stereo_pair(rng, 30)
        F = solve(ModelKind.FUNDAMENTAL, x1, x2).matrix

        assert np.linalg.norm(F) == pytest.approx(1.0)
        np.testing.assert_allclose(same_up_to_sign(F, F_true), F_true, atol=1e-7)
        assert sampson_error(F, x1, x2).max() < 1e-8

    def test_rank_two(self, rng):
        x1, x2, _ = stereo_pair(rng, 8)
        F = solve(ModelKind.FUNDAMENTAL, x1, x2).matrix
        s = np.linalg.svd(F, compute_uv=False)
        assert s[2] < 1e-10 * s[0]

    def test_enforce_rank2(self, rng):
        F = enforce_rank2(rng.normal(size=(3, 3)))
        assert abs(np.linalg.det(F)) < 1e-12

    def test_fundamental_cannot_map_points(self, rng):
        x1, x2, _ = stereo_pair(rng, 8)
        model = solve(ModelKind.FUNDAMENTAL, x1, x2)
        with pytest.raises(TypeError):
            model.apply(x1)
        with pytest.raises(TypeError):
            model.inverse()


class TestFailures:

    @pytest.mark.parametrize("kind", list(ModelKind), ids=lambda k: k.label)
    def test_too_few_correspondences(self, kind, rng):
        n = kind.min_samples - 1
        x1 = random_points(rng, n)
        x2 = random_points(rng, n)
        with pytest.raises(InsufficientCorrespondencesError) as info:
            solve(kind, x1, x2)
        assert info.value.required == kind.min_samples
        assert info.value.got == n

    @pytest.mark.parametrize("kind", list(ModelKind), ids=lambda k: k.label)
    def test_empty_input(self, kind):
        with pytest.raises(InsufficientCorrespondencesError):
            solve(kind, np.zeros((0, 2)), np.zeros((0, 2)))

    def test_mismatched_lengths(self, rng):
        with pytest.raises(ValueError):
            solve(ModelKind.AFFINE, random_points(rng, 5), random_points(rng, 6))

    def test_coincident_points(self):
        x1 = np.full((4, 2), 3.0)
        x2 = np.array([[0.0, 0.0], [1.0, 0.0], [0.0, 1.0], [1.0, 1.0]])
        with pytest.raises(DegenerateInputError):
            solve(ModelKind.SIMILARITY, x1, x2)

    @pytest.mark.parametrize("kind", [ModelKind.AFFINE, ModelKind.HOMOGRAPHY], ids=lambda k: k.label)
    def test_collinear_points(self, kind):
        n = kind.min_samples
        x1 = np.column_stack([np.arange(n, dtype=np.float64), 2.0 * np.arange(n) + 1.0])
        x2 = x1 + 5.0
        with pytest.raises(DegenerateInputError):
            solve(kind, x1, x2)


class TestGeometricModel:

    def test_inverse_round_trips_points(self, transform_case):
        kind, _, x1, x2 = transform_case
        model = solve(kind, x1, x2)
        back = model.inverse()
        assert back.kind is kind
        np.testing.assert_allclose(back.apply(x2), x1, atol=1e-6)

    def test_rejects_wrong_shape(self):
        with pytest.raises(ValueError):
            GeometricModel(ModelKind.AFFINE, np.eye(2))

    def test_kind_metadata(self):
        assert [k.min_samples for k in ModelKind] == [2, 2, 3, 4, 8]
        assert [k.dof for k in ModelKind] == [3, 4, 6, 8, 7]
        with pytest.raises(ValueError):
            ModelKind.parse("projective")

    def test_equal_models_compare_and_hash_equal(self, rng):
        x1 = random_points(rng, 6)
        x2 = apply_T(TRUE_MODELS[ModelKind.AFFINE], x1)

        a = solve(ModelKind.AFFINE, x1, x2)
        b = solve(ModelKind.AFFINE, x1, x2)

        assert a == b
        assert hash(a) == hash(b)
        assert len({a, b}) == 1
        assert {a: "first"}[b] == "first"

    def test_models_differ_by_kind_and_matrix(self):
        eye = GeometricModel(ModelKind.AFFINE, np.eye(3))
        shifted = np.eye(3)
        shifted[0, 2] = 1.0

        assert eye != GeometricModel(ModelKind.HOMOGRAPHY, np.eye(3))
        assert eye != GeometricModel(ModelKind.AFFINE, shifted)
        assert eye != "affine"

    def test_signed_zero_does_not_split_hash(self):
        neg = np.eye(3)
        neg[0, 1] = -0.0
        a = GeometricModel(ModelKind.AFFINE, np.eye(3))
        b = GeometricModel(ModelKind.AFFINE, neg)
        assert a == b
        assert hash(a) == hash(b)
