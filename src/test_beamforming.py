"""
Unit tests for the delay model and the delay-and-sum accumulators.
"""

import math

import numpy as np
import pytest

from das_recon import (
    AcquisitionConfig,
    Apodization,
    DelayGeometry,
    DelayMethod,
    InvalidConfiguration,
    beamform_slice,
    beamform_slice_reference,
    box_window,
    hann_window,
    make_window,
)
from das_recon.delays import (
    LINEAR,
    QUAD_APPROX,
    SPHERICAL,
    aperture_bounds,
    aperture_bounds_vec,
    apodization_index,
    apodization_index_vec,
    delay_offset,
    delay_offset_vec,
    pixel_delay_factor,
    pixel_delay_factor_vec,
)
from das_recon.phantoms import simulate_point_source

ALL_METHODS = [DelayMethod.LINEAR, DelayMethod.QUAD_APPROX, DelayMethod.SPHERICAL]


def run_both(data, config):
    """Reconstruct one slice with the reference and the numba implementation."""
    lines_in, samples_in = data.shape
    geometry = DelayGeometry.from_config(config, lines_in, samples_in)
    window = make_window(config.apodization, config.aperture_size)
    img_ref = beamform_slice_reference(data, window, geometry, config.delay_method)
    img_vec = beamform_slice(data, window, geometry, config.delay_method)
    return img_ref, img_vec


class TestApodizationWindow:
    """Tests for the window tables."""

    @pytest.mark.parametrize("size", [2, 4, 8, 17, 256])
    def test_hann_endpoints_and_peak(self, size):
        w = hann_window(size)
        assert w.shape == (size,)
        assert w[0] == 0.0
        assert w[-1] == 0.0
        assert w[(size - 1) // 2] == w.max()
        np.testing.assert_array_equal(w, w[::-1])

    def test_hann_matches_raised_cosine(self):
        n = np.arange(10)
        expected = (1 - np.cos(2 * np.pi * n / 9)) / 2
        np.testing.assert_allclose(hann_window(10), expected, rtol=1e-12, atol=1e-15)

    def test_box_window(self):
        np.testing.assert_array_equal(box_window(6), np.ones(6))

    @pytest.mark.parametrize("size", [0, 1])
    def test_too_small_aperture(self, size):
        with pytest.raises(InvalidConfiguration):
            hann_window(size)
        with pytest.raises(InvalidConfiguration):
            make_window(Apodization.BOX, size)

    def test_table_is_read_only(self):
        w = make_window(Apodization.HANN, 8)
        with pytest.raises(ValueError):
            w[0] = 1.0


class TestDelayModel:
    """Tests for aperture bounds and apodization indexing."""

    def test_aperture_without_steering_is_one_line(self):
        assert aperture_bounds(5.0, 100.0, 0.0, 16) == (5, 6)

    def test_aperture_grows_with_depth(self):
        narrow = aperture_bounds(8.0, 10.0, 0.1, 16)
        wide = aperture_bounds(8.0, 40.0, 0.1, 16)
        assert narrow == (7, 10)
        assert wide == (4, 13)

    def test_aperture_truncates_lower_bound(self):
        # 5 - 0.5 truncates to 4: the fractional channel below is included
        assert aperture_bounds(5.0, 5.0, 0.1, 16) == (4, 6)
        assert aperture_bounds(5.25, 10.0, 0.125, 16) == (4, 7)

    def test_aperture_is_clipped(self):
        assert aperture_bounds(1.0, 100.0, 0.125, 16) == (0, 14)
        assert aperture_bounds(15.0, 100.0, 0.125, 16) == (2, 16)

    def test_fractional_line_without_steering(self):
        assert aperture_bounds(3.5, 0.0, 0.0, 4) == (3, 4)
        assert aperture_bounds(2.5, 7.0, 0.0, 4) == (2, 3)

    def test_vectorized_bounds_match_scalar(self):
        rng = np.random.default_rng(0)
        line_in = rng.uniform(0, 20, 200)
        for sample_in in (0.0, 3.0, 17.5, 90.0):
            min_vec, max_vec = aperture_bounds_vec(line_in, sample_in, 0.07, 20)
            for i, l_i in enumerate(line_in):
                assert aperture_bounds(l_i, sample_in, 0.07, 20) == (min_vec[i], max_vec[i])

    @pytest.mark.parametrize("size", [2, 8, 64])
    def test_apodization_index_identity_for_full_aperture(self, size):
        assert [apodization_index(j, size, size) for j in range(size)] == list(range(size))

    @pytest.mark.parametrize("width", range(1, 40))
    def test_apodization_index_symmetric(self, width):
        size = 16
        idx = [apodization_index(j, width, size) for j in range(width)]
        assert all(0 <= i < size for i in idx)
        for j in range(width):
            assert idx[j] + idx[width - 1 - j] == size - 1 or idx[j] == idx[width - 1 - j]
        np.testing.assert_array_equal(
            apodization_index_vec(np.arange(width), width, size), idx
        )

    def test_single_channel_uses_window_centre(self):
        assert apodization_index(0, 1, 8) == 4


def add_sample(method, line_in, sample_in, d, lines_in, lateral_scale, sample_scale):
    """Delay offset of a channel through the compiled and the numpy functions."""
    factor = pixel_delay_factor(method, line_in, sample_in, lines_in, lateral_scale, sample_scale)
    offset = delay_offset(method, d, factor, sample_in)
    factor_vec = pixel_delay_factor_vec(
        method, np.array([line_in]), sample_in, lines_in, lateral_scale, sample_scale
    )
    offset_vec = delay_offset_vec(method, np.array([d]), factor_vec, sample_in)
    return offset, offset_vec[0]


class TestDelayFormulas:
    """AddSample against values worked out by hand."""

    # lines_in = 32, lateral_scale = 0.5, sample_scale = 2 -> k = 1 sample per line
    @pytest.mark.parametrize(
        "line_in, sample_in, d, expected",
        [
            (8.0, 6.0, 3.0, 2.4),  # l = 4, x = 3: 4/5 * 1 * 3
            (24.0, 6.0, -2.0, 1.6),  # l = -4, x = 3: -4/5 * 1 * -2
            (16.0, 0.0, 5.0, 0.0),  # l = x = 0
            (16.0, 8.0, 4.0, 0.0),  # l = 0: the pixel under the array centre
        ],
    )
    def test_linear(self, line_in, sample_in, d, expected):
        for value in add_sample(LINEAR, line_in, sample_in, d, 32, 0.5, 2.0):
            assert value == pytest.approx(expected, abs=1e-12)

    # lateral_scale = 0.5, sample_scale = 4 -> k = 2 samples per line
    @pytest.mark.parametrize(
        "sample_in, d, expected",
        [
            (8.0, 3.0, 4.5),  # 2**2 / 8 * 3**2
            (8.0, -2.0, 2.0),
            (100.0, 4.0, 0.64),
            (8.0, 0.0, 0.0),
            (0.0, 0.0, 0.0),
        ],
    )
    def test_quad_approx(self, sample_in, d, expected):
        for value in add_sample(QUAD_APPROX, 10.0, sample_in, d, 32, 0.5, 4.0):
            assert value == pytest.approx(expected, abs=1e-12)

    def test_quad_approx_at_surface_rejects_other_channels(self):
        for value in add_sample(QUAD_APPROX, 10.0, 0.0, 1.0, 32, 0.5, 4.0):
            assert value == math.inf

    @pytest.mark.parametrize(
        "sample_in, d, expected",
        [
            (3.0, 2.0, 2.0),  # sqrt(3**2 + 4**2) - 3
            (0.0, 1.5, 3.0),
            (12.0, -4.5, 3.0),  # sqrt(144 + 81) - 12
        ],
    )
    def test_spherical(self, sample_in, d, expected):
        for value in add_sample(SPHERICAL, 10.0, sample_in, d, 32, 0.5, 4.0):
            assert value == pytest.approx(expected, abs=1e-12)

    def test_quad_approx_matches_config_scale(self):
        config = AcquisitionConfig(
            pitch=3e-4, transducer_elements=32, record_time=1.6e-5, sound_speed=1540.0
        )
        geometry = DelayGeometry.from_config(config, 32, 256)
        k = geometry.samples_per_line_step
        offset, _ = add_sample(
            QUAD_APPROX, 16.0, 100.0, 4.0, 32, geometry.lateral_scale, geometry.sample_scale
        )
        assert offset == pytest.approx(k * k * 16 / 100)
        assert offset == pytest.approx(1.5544, abs=1e-3)


class TestAccumulator:
    """Tests comparing the reference and the numba accumulators."""

    @pytest.fixture
    def test_data(self):
        rng = np.random.default_rng(42)
        return rng.standard_normal((24, 96))

    @pytest.mark.parametrize("method", ALL_METHODS)
    @pytest.mark.parametrize("apodization", [Apodization.HANN, Apodization.BOX])
    def test_equivalence(self, test_data, method, apodization):
        """Numba kernel matches the reference for non-integer grid mappings."""
        config = AcquisitionConfig(
            pitch=3e-4,
            sound_speed=1540.0,
            transducer_elements=24,
            record_time=2e-5,
            samples_per_line=80,
            reconstruction_lines=20,
            steering_angle=25.0,
            delay_method=method,
            apodization=apodization,
        )
        img_ref, img_vec = run_both(test_data, config)

        assert img_vec.shape == (20, 80)
        assert np.all(np.isfinite(img_vec))
        assert np.max(np.abs(img_ref)) > 0
        np.testing.assert_allclose(img_vec, img_ref, rtol=1e-10, atol=1e-12)

    @pytest.mark.parametrize("method", ALL_METHODS)
    def test_equivalence_negative_angle(self, test_data, method):
        config = AcquisitionConfig(
            pitch=3e-4,
            transducer_elements=24,
            record_time=2e-5,
            samples_per_line=96,
            reconstruction_lines=24,
            steering_angle=-25.0,
            delay_method=method,
        )
        img_ref, img_vec = run_both(test_data, config)
        np.testing.assert_allclose(img_vec, img_ref, rtol=1e-10, atol=1e-12)

    def test_steering_sign_does_not_matter(self, test_data):
        config = AcquisitionConfig(
            transducer_elements=24, samples_per_line=96, reconstruction_lines=24,
            record_time=2e-5, steering_angle=25.0,
        )
        _, img_pos = run_both(test_data, config)
        _, img_neg = run_both(test_data, config.replace(steering_angle=-25.0))
        np.testing.assert_array_equal(img_pos, img_neg)

    @pytest.mark.parametrize("method", ALL_METHODS)
    def test_constant_input_is_preserved(self, method):
        data = np.full((16, 64), 3.5)
        config = AcquisitionConfig(
            transducer_elements=16,
            samples_per_line=32,
            reconstruction_lines=8,
            delay_method=method,
        )
        img_ref, img_vec = run_both(data, config)
        np.testing.assert_allclose(img_vec, 3.5, rtol=1e-12)
        np.testing.assert_allclose(img_ref, 3.5, rtol=1e-12)

    @pytest.mark.parametrize("method", ALL_METHODS)
    def test_small_all_ones_round_trip(self, method):
        config = AcquisitionConfig(
            transducer_elements=4,
            reconstruction_lines=4,
            samples_per_line=4,
            pitch=1.0,
            sound_speed=1.0,
            record_time=1.0,
            delay_method=method,
        )
        img_ref, img_vec = run_both(np.ones((4, 4)), config)
        np.testing.assert_array_equal(img_vec, np.ones((4, 4)))
        np.testing.assert_array_equal(img_ref, np.ones((4, 4)))

    @pytest.mark.parametrize("apodization", [Apodization.HANN, Apodization.BOX])
    def test_normalized_by_whole_aperture(self, apodization):
        """Out-of-range contributions are skipped but still count in the divisor."""
        config = AcquisitionConfig(
            pitch=3.0,
            sound_speed=1.0,
            record_time=4.0,
            transducer_elements=3,
            samples_per_line=4,
            reconstruction_lines=3,
            steering_angle=60.0,
            delay_method=DelayMethod.SPHERICAL,
            apodization=apodization,
        )
        # pixel (1, 3): aperture [0, 3); the outer channels land past the last sample
        window = make_window(apodization, 6)
        expected = window[3] / (window[1] + window[3] + window[4])

        img_ref, img_vec = run_both(np.ones((3, 4)), config)
        assert img_vec[1, 3] == pytest.approx(expected)
        assert img_ref[1, 3] == pytest.approx(expected)
        if apodization is Apodization.BOX:
            assert img_vec[1, 3] == pytest.approx(1 / 3)

    def test_output_buffer_is_reused(self, test_data):
        config = AcquisitionConfig(transducer_elements=24, samples_per_line=96,
                                   reconstruction_lines=24, record_time=2e-5)
        geometry = DelayGeometry.from_config(config, 24, 96)
        window = make_window(config.apodization, config.aperture_size)
        out = np.full((24, 96), np.nan)
        result = beamform_slice(test_data, window, geometry, config.delay_method, out=out)
        assert result is out
        assert np.all(np.isfinite(out))

    def test_serial_kernel_matches_parallel(self, test_data):
        config = AcquisitionConfig(transducer_elements=24, samples_per_line=50,
                                   reconstruction_lines=30, record_time=2e-5,
                                   steering_angle=20.0, delay_method="spherical")
        geometry = DelayGeometry.from_config(config, 24, 96)
        window = make_window(config.apodization, config.aperture_size)
        img_par = beamform_slice(test_data, window, geometry, config.delay_method)
        img_ser = beamform_slice(test_data, window, geometry, config.delay_method, parallel=False)
        np.testing.assert_array_equal(img_ser, img_par)

    def test_shape_mismatch(self, test_data):
        config = AcquisitionConfig(transducer_elements=24)
        geometry = DelayGeometry.from_config(config, 32, 96)
        window = make_window(config.apodization, config.aperture_size)
        with pytest.raises(ValueError):
            beamform_slice(test_data, window, geometry, config.delay_method)


class TestPointSource:
    """Reconstruction of synthetic point sources."""

    @pytest.mark.parametrize("method", ALL_METHODS)
    def test_point_source_without_steering(self, method):
        data = np.zeros((16, 16))
        data[8, 10] = 1.0
        config = AcquisitionConfig(
            transducer_elements=16,
            samples_per_line=16,
            reconstruction_lines=16,
            steering_angle=0.0,
            delay_method=method,
        )
        img_ref, img_vec = run_both(data, config)

        for img in (img_ref, img_vec):
            assert np.unravel_index(np.argmax(img), img.shape) == (8, 10)
            assert img[8, 10] == pytest.approx(1.0)
            assert img[7, 10] == img[9, 10]
            assert img[8, 9] == img[8, 11]

    def test_spherical_focuses_arrival_curve(self):
        config = AcquisitionConfig(
            pitch=3e-4,
            sound_speed=1540.0,
            transducer_elements=32,
            record_time=1.6e-5,
            samples_per_line=256,
            reconstruction_lines=32,
            steering_angle=20.0,
            delay_method=DelayMethod.SPHERICAL,
        )
        data = simulate_point_source(config, 32, 256, source_line=16, source_sample=100)[:, :, 0]
        # the source spreads over many channels in the raw data
        assert np.count_nonzero(data) > 20

        img_ref, img_vec = run_both(data, config)
        for img in (img_ref, img_vec):
            assert np.unravel_index(np.argmax(img), img.shape) == (16, 100)
            assert img[16, 100] == pytest.approx(1.0)
            for offset in (1, 2, 3):
                assert img[16 - offset, 100] < 1.0
                assert img[16 + offset, 100] < 1.0
