import sys
import argparse
import logging
from pathlib import Path

from signal_processing.config import ChannelOrder, PipelineConfig
from signal_processing.processor import VitalsPipeline
from signal_processing.evaluation import OfflineEvaluator, SyntheticFrameGenerator
from video.capture import VideoCapture, center_roi

logger = logging.getLogger('FingerPulse')


def setup_logging(level=logging.INFO):
    """Set up logging configuration."""
    log_dir = Path(__file__).parent / 'logs'
    log_dir.mkdir(exist_ok=True)

    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.FileHandler(log_dir / 'app.log'),
            logging.StreamHandler()
        ]
    )


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        description="FingerPulse - fingertip camera vitals estimation"
    )
    parser.add_argument('--source', default='0',
                        help="camera index or video file path (default: 0)")
    parser.add_argument('--synthetic', type=float, metavar='BPM',
                        help="run on synthetic fingertip frames at this heart rate instead of a camera")
    parser.add_argument('--duration', type=float, default=30.0,
                        help="seconds to process (default: 30)")
    parser.add_argument('--calibrate', action='store_true',
                        help="run baseline calibration at start")
    parser.add_argument('--roi', type=float, default=0.5,
                        help="central ROI size relative to the frame (default: 0.5)")
    parser.add_argument('--truth', help="ground-truth JSON of {frame_index: bpm}")
    parser.add_argument('--log-level', default='INFO',
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'])
    return parser.parse_args(argv)


def camera_frames(source, duration, roi_fraction):
    capture = VideoCapture()
    source = int(source) if source.isdigit() else source
    if not capture.start(source):
        raise RuntimeError(f"Could not open video source: {source}")
    try:
        while True:
            frame, timestamp = capture.get_frame()
            if frame is None or timestamp > duration * 1000.0:
                break
            yield center_roi(frame, roi_fraction), timestamp
    finally:
        capture.stop()


def run(args):
    config = PipelineConfig()
    if args.synthetic is not None:
        frames = SyntheticFrameGenerator(bpm=args.synthetic).frames(args.duration)
    else:
        config.extractor.channel_order = ChannelOrder.BGR
        frames = camera_frames(args.source, args.duration, args.roi)

    pipeline = VitalsPipeline(config)
    pipeline.add_beat_listener(lambda beat: logger.debug("Beat at %.0f ms", beat.timestamp))
    evaluator = OfflineEvaluator(args.truth) if args.truth else None

    calibration_started = False
    estimate = None
    for index, (frame, timestamp) in enumerate(frames):
        if args.calibrate and not calibration_started:
            pipeline.start_calibration(timestamp)
            calibration_started = True

        estimate = pipeline.process_frame(frame, timestamp)
        logger.info("%.0f ms | %s | bpm %.1f spo2 %.1f bp %.0f/%.0f | quality %s | %s",
                    timestamp, estimate.status.value, estimate.bpm, estimate.spo2,
                    estimate.systolic, estimate.diastolic, estimate.quality.value,
                    estimate.arrhythmia_type.value)
        if evaluator is not None:
            evaluator.evaluate(index, estimate.bpm)

    if estimate is not None:
        logger.info("Final estimate: %s", estimate.to_dict() | {'readings': len(estimate.readings)})
    if evaluator is not None:
        logger.info("Evaluation: %s", evaluator.summary())
    return estimate


def main(argv=None):
    """Main entry point of the application."""
    args = parse_args(argv)
    try:
        setup_logging(getattr(logging, args.log_level))
        logger.info("Starting FingerPulse")
        run(args)
    except Exception as e:
        logging.error(f"FingerPulse failed: {str(e)}")
        sys.exit(1)


if __name__ == '__main__':
    main()
