"""Entry point for parla CLI client."""

import argparse
import sys

from cli.api_client import ParlaAPIClient
from cli.console import ConsoleUI


def main():
    parser = argparse.ArgumentParser(description='Parla - conversational language practice')
    parser.add_argument(
        '--server',
        default='http://localhost:8000',
        help='Server URL (default: http://localhost:8000)'
    )
    parser.add_argument('--contact', help='Name of the person to call')
    parser.add_argument('--personality', default='', help='Contact personality, e.g. "cheerful"')
    parser.add_argument('--hometown', default='', help='Contact hometown')
    parser.add_argument(
        '--interests',
        default='',
        help='Comma-separated contact interests'
    )
    parser.add_argument('--language', help='Language to practice (default: server setting)')
    parser.add_argument('--native', help='Your native language (default: server setting)')
    args = parser.parse_args()

    contact = None
    if args.contact:
        contact = {
            'name': args.contact,
            'personality': args.personality,
            'hometown': args.hometown,
            'interests': [i.strip() for i in args.interests.split(',') if i.strip()]
        }

    client = ParlaAPIClient(base_url=args.server)
    ui = ConsoleUI(client, contact, args.language, args.native)

    try:
        ui.run()
    except KeyboardInterrupt:
        print('\nGoodbye!')
        sys.exit(0)


if __name__ == '__main__':
    main()
