import argparse
import json
import logging
import os
import sys

from abcscribe.pipeline.config import DEFAULT_CONFIG, load_config
from abcscribe.pipeline.instrumentation import PipelineLogger
from abcscribe.pipeline.models import TranscriptionError, TranscriptionOptions
from abcscribe.pipeline.transcribe import transcribe_file

logger = logging.getLogger("abcscribe")


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Transcribe detected note events to ABC notation")
    parser.add_argument("--events_path", required=True, help="Note events file (.json or Basic Pitch .csv)")
    parser.add_argument("--sensitivity", choices=["strict", "loose"], default="loose",
                        help="Confidence filter: strict keeps amplitude >= 0.2, loose >= 0.1")
    parser.add_argument("--split_voices", action="store_true", help="Write treble and bass voices split at middle C")
    parser.add_argument("--no_chords", action="store_true", help="Keep only the highest pitch at each onset")
    parser.add_argument("--instrument", default=None, help="Instrument name for the %%%%MIDI program directive")
    parser.add_argument("--config", default=None, help="JSON file with config overrides")
    parser.add_argument("--output_abc", default="output.abc", help="Output ABC path")
    parser.add_argument("--output_log", default="transcription_log.json", help="Output metadata log path")
    parser.add_argument("--log_dir", default=None, help="Directory for structured JSONL pipeline logs")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')

    if not os.path.exists(args.events_path):
        logger.error(f"Events file not found: {args.events_path}")
        return 1

    config = load_config(args.config) if args.config else DEFAULT_CONFIG
    options = TranscriptionOptions(
        sensitivity=args.sensitivity,
        split_voices=args.split_voices,
        detect_chords=not args.no_chords,
        instrument=args.instrument,
    )
    pipeline_logger = PipelineLogger(base_dir=args.log_dir) if args.log_dir else None

    try:
        result = transcribe_file(args.events_path, options=options, config=config, pipeline_logger=pipeline_logger)
    except TranscriptionError as e:
        logger.error(str(e))
        return 1
    finally:
        if pipeline_logger:
            pipeline_logger.finalize()

    with open(args.output_abc, "w", encoding="utf-8") as f:
        f.write(result.abc + "\n")
    logger.info(f"Written ABC to {args.output_abc}")

    log_entry = result.to_dict()
    log_entry.pop("abc")
    with open(args.output_log, "w", encoding="utf-8") as f:
        json.dump(log_entry, f, indent=2)
    logger.info(f"Written log to {args.output_log}")
    logger.info(f"Estimated key (best effort, pitch-class histogram): {result.detected_key}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
