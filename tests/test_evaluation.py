import json

import numpy as np
import pytest

import main
from signal_processing.config import ChannelOrder
from signal_processing.evaluation import (OfflineEvaluator, SyntheticFrameGenerator,
                                          SyntheticSignalGenerator, grey_frames)
from signal_processing.types import PixelRegion, PipelineStatus
from video.capture import center_roi


def test_signal_generator_is_seeded():
    first = SyntheticSignalGenerator(bpm=72, noise_level=0.1, seed=4).generate(2.0)
    second = SyntheticSignalGenerator(bpm=72, noise_level=0.1, seed=4).generate(2.0)

    assert len(first) == 60
    np.testing.assert_array_equal(first, second)


def test_frame_generator_layouts():
    rgba, timestamp = next(SyntheticFrameGenerator(size=(16, 8)).frames(1.0))
    bgr, _ = next(SyntheticFrameGenerator(channel_order=ChannelOrder.BGR).frames(1.0))
    region, _ = next(SyntheticFrameGenerator(size=(16, 8)).regions(1.0))

    assert rgba.shape == (16, 8, 4) and rgba.dtype == np.uint8
    assert bgr.shape == (32, 32, 3)
    assert bgr[..., 2].mean() > bgr[..., 0].mean()
    assert isinstance(region, PixelRegion)
    assert region.to_array().shape == (16, 8, 4)
    assert timestamp == 0.0


def test_grey_frames_are_uniform():
    frames = list(grey_frames(3, level=100))

    assert [t for _, t in frames] == pytest.approx([0.0, 1000 / 30, 2000 / 30])
    assert np.all(frames[0][0][..., :3] == 100)


def test_offline_evaluator_scores_against_truth(tmp_path):
    truth = tmp_path / 'truth.json'
    truth.write_text(json.dumps({'0': 70, '1': 72}))
    evaluator = OfflineEvaluator(str(truth))

    assert evaluator.evaluate(0, 75.0) == 5.0
    assert evaluator.evaluate(1, 70.0) == 2.0
    assert evaluator.evaluate(2, 70.0) is None
    assert evaluator.evaluate(0, 0.0) is None
    summary = evaluator.summary()
    assert summary['frames'] == 2
    assert summary['mae'] == pytest.approx(3.5)


def test_missing_truth_file_is_empty(tmp_path):
    evaluator = OfflineEvaluator(str(tmp_path / 'missing.json'))

    assert evaluator.ground_truth == {}
    assert evaluator.summary()['mae'] is None


def test_center_roi_crops_middle():
    frame = np.arange(100 * 200 * 3, dtype=np.uint32).reshape(100, 200, 3)

    roi = center_roi(frame, 0.5)

    assert roi.shape == (50, 100, 3)
    np.testing.assert_array_equal(roi[0, 0], frame[25, 50])
    assert center_roi(np.zeros((0, 0, 3)), 0.5) is None
    with pytest.raises(ValueError):
        center_roi(frame, 0.0)


def test_cli_synthetic_run():
    args = main.parse_args(['--synthetic', '72', '--duration', '10'])

    estimate = main.run(args)

    assert args.log_level == 'INFO'
    assert estimate.status is PipelineStatus.OK
    assert estimate.bpm == pytest.approx(72.0, abs=5.0)
