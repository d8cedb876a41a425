"""
Command line interface for the Replicate prediction client.

Examples:
    python main.py run --model meta/meta-llama-3-8b-instruct --input prompt="Hello"
    python main.py run --version 5c7d5dc6dd8bf75c --input steps=20 --no-wait
    python main.py run --model meta/meta-llama-3-8b-instruct --input prompt=Hi --stream
    python main.py get <prediction-id>
    python main.py cancel <prediction-id>
    python main.py wait <prediction-id>
    python main.py upload ./image.png
"""

import argparse
import json
import logging
import sys
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv

from models.base import PredictionRequest, PredictionResponse
from models.client import ReplicateClient, create_client
from models.errors import PredictionError
from utils.logger import setup_logger

# Load environment variables from .env file
load_dotenv()


def parse_inputs(pairs: Optional[List[str]]) -> Dict[str, Any]:
    """
    Parse key=value pairs into a prediction input map.

    Values are decoded as JSON when possible so numbers, booleans and lists
    keep their type; anything else is kept as a string.

    Args:
        pairs: Strings in key=value form

    Returns:
        Input dictionary in the order given
    """
    inputs = {}
    for pair in pairs or []:
        key, sep, value = pair.partition('=')
        if not sep or not key:
            raise argparse.ArgumentTypeError(f"Invalid input '{pair}', expected key=value")
        try:
            inputs[key] = json.loads(value)
        except ValueError:
            inputs[key] = value
    return inputs


def print_prediction(prediction: PredictionResponse) -> None:
    print(json.dumps(prediction.to_dict(), indent=2, default=str))


def run_prediction(client: ReplicateClient, args: argparse.Namespace) -> None:
    request = PredictionRequest(
        version=args.version,
        input=parse_inputs(args.input),
        webhook=args.webhook,
        webhook_events_filter=args.webhook_events or None,
        stream=True if args.stream else None,
    )

    if args.stream:
        with client.create_prediction_stream(args.model, request) as stream:
            for chunk in stream:
                print(chunk.output, end='', flush=True)
        print()
        return

    if args.no_wait:
        prediction = client.create_prediction(args.model, request, args.prefer_wait, args.cancel_after)
    else:
        prediction = client.create_prediction_and_wait(args.model, request, args.prefer_wait, args.cancel_after)
    print_prediction(prediction)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='Replicate Prediction Client')
    parser.add_argument('--api-key', '-k', help='API token (default: REPLICATE_API_TOKEN)')
    parser.add_argument('--base-url', help='API base URL (default: REPLICATE_BASE_URL or public API)')
    parser.add_argument('--max-attempts', type=int, default=None,
                        help='Maximum status polls while waiting')
    parser.add_argument('--interval', type=float, default=None,
                        help='Delay between status polls (seconds)')
    parser.add_argument('--verbose', '-v', action='store_true', help='Enable debug logging')
    parser.add_argument('--log-file', help='Also write logs to this file')

    subparsers = parser.add_subparsers(dest='command', required=True)

    run = subparsers.add_parser('run', help='Create a prediction')
    target = run.add_mutually_exclusive_group(required=True)
    target.add_argument('--model', '-m', help='Official model name (owner/name)')
    target.add_argument('--version', help='Model version id')
    run.add_argument('--input', '-i', action='append', metavar='KEY=VALUE',
                     help='Model input, repeatable')
    run.add_argument('--prefer-wait', help='Synchronous wait: "wait", "5" or "wait=5"')
    run.add_argument('--cancel-after', help='Auto-cancel after a duration, e.g. "5m"')
    run.add_argument('--webhook', help='Webhook URL for async notifications')
    run.add_argument('--webhook-events', nargs='+', default=[],
                     help='Webhook events: start, output, logs, completed')
    mode = run.add_mutually_exclusive_group()
    mode.add_argument('--no-wait', action='store_true', help='Return the first snapshot without polling')
    mode.add_argument('--stream', action='store_true', help='Stream output as it is produced')

    for name, help_text in (
        ('get', 'Show the current state of a prediction'),
        ('cancel', 'Cancel a prediction'),
        ('wait', 'Wait for a prediction to finish'),
    ):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument('prediction_id', help='Prediction id')

    upload = subparsers.add_parser('upload', help='Upload a file for use in an input')
    upload.add_argument('path', help='File to upload')
    upload.add_argument('--filename', help='Name to store the file under')

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main function for command line execution
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    setup_logger(
        level=logging.DEBUG if args.verbose else logging.INFO,
        log_file=args.log_file,
    )

    try:
        client = create_client(
            api_key=args.api_key,
            base_url=args.base_url,
            max_poll_attempts=args.max_attempts,
            poll_interval=args.interval,
        )

        if args.command == 'run':
            run_prediction(client, args)
        elif args.command == 'get':
            print_prediction(client.get_prediction(args.prediction_id))
        elif args.command == 'cancel':
            print_prediction(client.cancel_prediction(args.prediction_id))
        elif args.command == 'wait':
            print_prediction(client.wait_for_completion(args.prediction_id))
        elif args.command == 'upload':
            uploaded = client.upload_file(args.path, args.filename)
            print(json.dumps({'id': uploaded.id, 'url': uploaded.url}, indent=2))

    except argparse.ArgumentTypeError as e:
        parser.error(str(e))
    except PredictionError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
