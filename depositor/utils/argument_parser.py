import argparse

class ArgumentParser:
    def __init__(self, argv=None):
        self.args = self.parse_arguments(argv)

    def parse_arguments(self, argv=None):
        parser = argparse.ArgumentParser(description='Decision Deposit Placer')
        parser.add_argument('-v', '--verbose', action='store_true', help='Enable verbose logging')
        parser.add_argument('-n', '--networks', help='Comma-separated networks to process (overrides NETWORKS)')
        parser.add_argument('--env-file', default='.env', help='Path to the .env file to load')
        parser.add_argument('--log-dir', help='Directory for log files (overrides LOG_DIR)')
        args = parser.parse_args(argv)
        return args
