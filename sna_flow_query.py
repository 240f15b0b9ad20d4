#!/usr/bin/env python3
"""
Secure Network Analytics Flow Query Script

This script authenticates against a Secure Network Analytics (Stealthwatch)
manager, submits an asynchronous flow query for a tenant, polls the query until
it is complete and saves the raw JSON result set to a file.

Workflow:
    1. Collect the password (getpass prompt, or SNA_PASSWORD for unattended runs)
    2. POST /token/v2/authenticate and read the XSRF-TOKEN session cookie
    3. Build the query body (optionally from a saved template)
    4. POST /sw-reporting/v2/tenants/{tenant}/flows/queries
    5. GET  .../queries/{id} until percentComplete reaches 100
    6. GET  .../queries/{id}/results and write the response body to --output

Usage Examples:
    # Last hour of flows for tenant 132, default output file
    python sna_flow_query.py --base-url https://smc.example.com --tenant 132 --username admin

    # Eight hours back, 500 records, subject filter from a file, save the body as a template
    python sna_flow_query.py --hours 8 --records 500 --subject @subject.json --save

    # Reuse the saved template but replace its peer filter
    python sna_flow_query.py --load --peer '{"ipAddresses": {"includes": ["10.0.0.0/8"]}}'

Configuration priority: command-line args > environment variables (.env supported) > config.ini

Environment Variables:
    SNA_BASE_URL, SNA_TENANT, SNA_USERNAME, SNA_PASSWORD
    SNA_PROXY_USER, SNA_PROXY_PASS, SNA_PROXY_HOST
    SNA_SSL_VERIFY, SNA_SSL_DISABLE_WARNINGS, SNA_POLL_TIMEOUT

Exit Codes:
    0 results saved, 1 fatal error, 2 results could not be fetched, 130 interrupted
"""

import argparse
import configparser
import getpass
import logging
import math
import os
import sys
import time

# Third-party imports
import requests
from dotenv import load_dotenv

from sna_query_builder import (
    DEFAULT_LOOKBACK_HOURS,
    DEFAULT_RECORD_LIMIT,
    DEFAULT_TEMPLATE_FILENAME,
    QueryConfigError,
    QueryRequestOptions,
    build_query_body,
    load_filter_argument,
)

# --- Constants ---
DEFAULT_OUTPUT_FILENAME = "flow_query_results.json"
DEFAULT_CONFIG_FILENAME = "config.ini"
DEFAULT_REQUEST_TIMEOUT = 30
DEFAULT_POLL_INTERVAL = 1
DEFAULT_PROXY_PORT = 8080
MAX_LOG_BODY_LENGTH = 500

# Endpoints
AUTHENTICATE_ENDPOINT = "/token/v2/authenticate"
LOGOUT_ENDPOINT = "/token"
FLOW_QUERIES_ENDPOINT_TEMPLATE = "/sw-reporting/v2/tenants/{}/flows/queries"

# HTTP Status Codes
HTTP_OK = 200
HTTP_CREATED = 201

# Cookies and Headers
XSRF_COOKIE_NAME = 'XSRF-TOKEN'
XSRF_HEADER_NAME = 'X-XSRF-TOKEN'
JSON_CONTENT_TYPE = 'application/json'
USER_AGENT = 'sna-flow-query/1.0'
SENSITIVE_HEADERS = ('cookie', 'set-cookie', 'authorization', 'proxy-authorization', 'x-xsrf-token')

# Exit Codes
EXIT_SUCCESS = 0
EXIT_FAILURE = 1
EXIT_RESULTS_NOT_FETCHED = 2
EXIT_INTERRUPTED = 130

TRUE_VALUES = ('1', 'true', 'yes', 'on')
FALSE_VALUES = ('0', 'false', 'no', 'off')

LOG_FORMAT = '%(asctime)s - %(levelname)s - %(message)s'

# --- Exceptions ---

class FlowQueryError(Exception):
    """Base exception for the flow query workflow."""
    pass

class RequestError(FlowQueryError):
    """Custom exception for network-level request errors."""
    pass

class AuthenticationError(FlowQueryError):
    """Authentication was rejected or did not yield an XSRF token."""
    pass

class QuerySubmissionError(FlowQueryError):
    """The flow query was not accepted by the service."""
    pass

class QueryStatusError(FlowQueryError):
    """The query status could not be read while polling."""
    pass

class QueryTimeoutError(FlowQueryError):
    """The query did not complete within the poll timeout."""
    pass

class ResultFetchError(FlowQueryError):
    """The results of a completed query could not be downloaded."""
    pass

# --- Utility Functions ---

def configure_logging(debug=False):
    """Sets up root logging in the format used across the scripts."""
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format=LOG_FORMAT
    )

def safe_request_handler(func):
    """Decorator for consistent error handling in HTTP requests."""
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except FlowQueryError:
            raise
        except requests.exceptions.RequestException as e:
            logging.error(f"Network error in {func.__name__}: {e}")
            if getattr(e, 'response', None) is not None:
                log_response_body(e.response, f"{func.__name__} network error response")
            raise RequestError(f"Network error in {func.__name__}: {e}")
    return wrapper

def log_session_cookies(session, title="Session Cookies"):
    """Logs the cookies held by the session. Values are never logged."""
    if logging.getLogger().isEnabledFor(logging.DEBUG):
        logging.debug(f"--- {title} ---")
        if session.cookies:
            for cookie in session.cookies:
                logging.debug(
                    f"  Name: {cookie.name}, Value: [Redacted], "
                    f"Domain: {cookie.domain}, Path: {cookie.path}, "
                    f"Expires: {cookie.expires}"
                )
        else:
            logging.debug("  Session holds no cookies.")
        logging.debug("-" * (len(title) + 6))

def _log_headers(headers):
    for key, value in headers.items():
        if key.lower() in SENSITIVE_HEADERS:
            logging.debug(f"  {key}: [{key.title()} Present - Redacted]")
        else:
            logging.debug(f"  {key}: {value}")

def log_response_headers(response, title="Response Headers"):
    """Logs the headers received in a server response."""
    if logging.getLogger().isEnabledFor(logging.DEBUG):
        logging.debug(f"--- {title} (Status: {response.status_code}) ---")
        if not response.headers:
            logging.debug("  (No headers received in response)")
        else:
            _log_headers(response.headers)
        logging.debug("-" * (len(title) + 6))

def log_request_headers(headers_dict, title="Request Headers", session=None):
    """Logs a dictionary of request headers, redacting sensitive ones."""
    if logging.getLogger().isEnabledFor(logging.DEBUG):
        logging.debug(f"--- {title} ---")

        if session is not None and session.headers:
            logging.debug("  --- Session Default Headers ---")
            _log_headers(session.headers)
            logging.debug("  -----------------------------")

        if headers_dict:
            logging.debug("  --- Specific Request Headers ---")
            _log_headers(headers_dict)
            logging.debug("  ------------------------------")
        else:
            logging.debug("  (No specific headers to display)")

        logging.debug("-" * (len(title) + 6))

def log_response_body(response, description):
    """Logs the start of a response body, used for failed calls."""
    try:
        body = response.text
    except (UnicodeDecodeError, AttributeError):
        return
    if body:
        logging.debug(f"--- {description} body (first {MAX_LOG_BODY_LENGTH} chars) ---")
        logging.debug(body[:MAX_LOG_BODY_LENGTH])

def save_content_to_file(content, filename=DEFAULT_OUTPUT_FILENAME, is_binary=False):
    """Saves the given content (string or bytes) to a file. Write errors propagate."""
    mode = "wb" if is_binary else "w"
    encoding = None if is_binary else "utf-8"
    try:
        with open(filename, mode, encoding=encoding) as f:
            f.write(content)
    except OSError as e:
        logging.error(f"--- ERROR: Could not write to file '{filename}': {e} ---")
        raise
    logging.info(f"--- Successfully saved content to: {filename} ---")

# --- Credentials ---

class Credentials:
    """Username and password for one invocation. The password is never shown."""

    def __init__(self, username, password):
        self.username = username
        self.password = password

    def clear(self):
        """Drops the password once it has been used."""
        self.password = None

    @property
    def is_cleared(self):
        return self.password is None

    def __repr__(self):
        return f"Credentials(username={self.username!r}, password=[Redacted])"

def prompt_for_password(username):
    """Prompts for the password without echoing it."""
    return getpass.getpass(f"Password for {username}: ")

def get_credentials(config, prompt=prompt_for_password):
    """Builds the credentials, prompting for the password unless SNA_PASSWORD is set.

    SNA_PASSWORD is removed from the process environment once read.
    """
    password = os.environ.pop('SNA_PASSWORD', None)
    if password:
        logging.info("Using password from SNA_PASSWORD environment variable.")
    else:
        password = prompt(config['username'])
    if not password:
        raise QueryConfigError("A password is required")
    return Credentials(config['username'], password)

# --- Configuration ---

def _positive_int(value):
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected a positive integer, got: {value}")
    if number <= 0:
        raise argparse.ArgumentTypeError(f"expected a positive integer, got: {value}")
    return number

def _positive_float(value):
    try:
        number = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected a positive number, got: {value}")
    if not math.isfinite(number) or number <= 0:
        raise argparse.ArgumentTypeError(f"expected a positive number, got: {value}")
    return number

def create_parser():
    """Create and configure argument parser."""
    parser = argparse.ArgumentParser(
        description='Run a Secure Network Analytics flow query and save the results',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Last hour of flows for tenant 132
  python sna_flow_query.py --base-url https://smc.example.com --tenant 132 --username admin

  # Save the built query body as a template, then reuse it with a new record limit
  python sna_flow_query.py --subject @subject.json --save
  python sna_flow_query.py --load --records 100
        """
    )
    parser.add_argument('--base-url', help='Service base URL (overrides SNA_BASE_URL env var)')
    parser.add_argument('--tenant', help='Tenant (domain) id (overrides SNA_TENANT env var)')
    parser.add_argument('--username', help='Login username (overrides SNA_USERNAME env var)')
    parser.add_argument('--output', default=DEFAULT_OUTPUT_FILENAME,
                        help=f'Result file path (default: {DEFAULT_OUTPUT_FILENAME})')
    parser.add_argument('--records', type=_positive_int, default=DEFAULT_RECORD_LIMIT,
                        help=f'Maximum number of flow records (default: {DEFAULT_RECORD_LIMIT})')
    parser.add_argument('--hours', type=_positive_float, default=DEFAULT_LOOKBACK_HOURS,
                        help=f'Number of hours to query back (default: {DEFAULT_LOOKBACK_HOURS})')
    parser.add_argument('--load', nargs='?', const=DEFAULT_TEMPLATE_FILENAME, metavar='PATH',
                        help=f'Start from a saved query template (default path: {DEFAULT_TEMPLATE_FILENAME})')
    parser.add_argument('--save', nargs='?', const=DEFAULT_TEMPLATE_FILENAME, metavar='PATH',
                        help=f'Save the built query as a template (default path: {DEFAULT_TEMPLATE_FILENAME})')
    parser.add_argument('--subject', help='Subject (host) filter: inline JSON or @file.json')
    parser.add_argument('--peer', help='Peer filter: inline JSON or @file.json')
    parser.add_argument('--flow', help='Flow filter: inline JSON or @file.json')
    parser.add_argument('--poll-interval', type=_positive_float, default=DEFAULT_POLL_INTERVAL,
                        help=f'Seconds between status polls (default: {DEFAULT_POLL_INTERVAL})')
    parser.add_argument('--poll-timeout', type=_positive_float,
                        help='Give up polling after this many seconds (overrides SNA_POLL_TIMEOUT; default: wait forever)')
    parser.add_argument('--config', default=DEFAULT_CONFIG_FILENAME,
                        help=f'Path to the ini configuration file (default: {DEFAULT_CONFIG_FILENAME})')
    parser.add_argument('--debug', action='store_true', help='Enable debug logging')
    return parser

def load_config_file(config_file=DEFAULT_CONFIG_FILENAME):
    """Load configuration from an ini file.

    Returns:
        configparser.ConfigParser: Loaded configuration object (empty if the file does not exist)
    """
    config = configparser.ConfigParser(interpolation=None)
    if os.path.exists(config_file):
        logging.info(f"Loading configuration from {config_file}")
        config.read(config_file)
    return config

def load_env_file():
    """Load environment variables from .env file if it exists. Existing variables win."""
    if load_dotenv(override=False):
        logging.info("Loaded environment variables from .env")
    else:
        logging.debug("No .env file found, using system environment variables")

def _get_proxy_config(user, password, host, port=DEFAULT_PROXY_PORT):
    """Builds the proxy dictionary if credentials are provided."""
    if not user or not password or not host:
        logging.debug("Proxy user, password or host not set. No proxy used.")
        return None

    proxy_url = f"http://{user}:{password}@{host}:{port}"
    logging.info(f"Proxy configured: {proxy_url.split('@')[1]}")
    return {'http': proxy_url, 'https': proxy_url}

def _parse_bool(value, default):
    """Parses an on/off setting. Anything unrecognised falls back to the default."""
    if value is None:
        return default
    normalized = str(value).strip().lower()
    if normalized in TRUE_VALUES:
        return True
    if normalized in FALSE_VALUES:
        return False
    logging.warning(f"Unrecognised boolean value {value!r}, using default: {default}")
    return default

def _parse_timeout(value):
    if value is None or str(value).strip() == '':
        return None
    try:
        timeout = float(value)
    except ValueError:
        raise QueryConfigError(f"Poll timeout must be a number of seconds, got: {value}")
    if not math.isfinite(timeout) or timeout <= 0:
        raise QueryConfigError(f"Poll timeout must be positive, got: {value}")
    return timeout

def _validate_required_config(config):
    """Validates that all required configuration is present."""
    required_vars = ['base_url', 'tenant', 'username']
    missing_vars = [var for var in required_vars if not config.get(var)]
    if missing_vars:
        missing_env_vars = [f'SNA_{v.upper()}' for v in missing_vars]
        logging.error(f"Missing required configuration: {', '.join(missing_env_vars)}")
        raise QueryConfigError(f"Missing required configuration: {', '.join(missing_env_vars)}")

def _setup_ssl_config(config):
    """Configures SSL warnings based on the verification setting."""
    if not config['ssl_verify']:
        logging.warning("SSL certificate verification is DISABLED.")
        if config['disable_ssl_warnings']:
            requests.packages.urllib3.disable_warnings(
                requests.packages.urllib3.exceptions.InsecureRequestWarning
            )
            logging.warning("Urllib3 InsecureRequestWarning is disabled.")
    else:
        logging.info("SSL certificate verification is ENABLED.")

def get_config(args):
    """Reads and validates configuration from config file, environment variables, and command-line arguments.

    Priority order: command-line args > environment variables > config file

    Args:
        args: Parsed command-line arguments from argparse

    Returns:
        dict: Configuration dictionary with all required settings
    """
    load_env_file()
    config_parser = load_config_file(args.config)

    base_url = (args.base_url or
                os.environ.get('SNA_BASE_URL') or
                config_parser.get('sna', 'base_url', fallback=None))

    config = {
        'base_url': base_url.rstrip('/') if base_url else None,
        'tenant': (args.tenant or
                   os.environ.get('SNA_TENANT') or
                   config_parser.get('sna', 'tenant', fallback=None)),
        'username': (args.username or
                     os.environ.get('SNA_USERNAME') or
                     config_parser.get('sna', 'username', fallback=None)),
        'proxy_user': (os.environ.get('SNA_PROXY_USER') or
                       config_parser.get('proxy', 'user', fallback=None)),
        'proxy_pass': (os.environ.get('SNA_PROXY_PASS') or
                       config_parser.get('proxy', 'pass', fallback=None)),
        'proxy_host': (os.environ.get('SNA_PROXY_HOST') or
                       config_parser.get('proxy', 'host', fallback=None)),
        'ssl_verify': _parse_bool(os.environ.get('SNA_SSL_VERIFY',
                                                 config_parser.get('ssl', 'verify', fallback=None)), True),
        'disable_ssl_warnings': _parse_bool(os.environ.get('SNA_SSL_DISABLE_WARNINGS',
                                                           config_parser.get('ssl', 'disable_warnings', fallback=None)), False),
        'poll_interval': args.poll_interval,
        'poll_timeout': (args.poll_timeout if args.poll_timeout is not None else
                         _parse_timeout(os.environ.get('SNA_POLL_TIMEOUT') or
                                        config_parser.get('sna', 'poll_timeout', fallback=None))),
        'output_file': args.output,
        'user_agent': USER_AGENT,
    }

    config['proxies'] = _get_proxy_config(config['proxy_user'], config['proxy_pass'], config['proxy_host'])

    _validate_required_config(config)
    _setup_ssl_config(config)

    return config

def build_query_options(args):
    """Turns the parsed query arguments into QueryRequestOptions."""
    load_path = args.load
    save_path = args.save
    return QueryRequestOptions(
        hours=args.hours,
        record_limit=args.records,
        subject=load_filter_argument(args.subject),
        peer=load_filter_argument(args.peer),
        flow=load_filter_argument(args.flow),
        load=load_path is not None,
        save=save_path is not None,
        template_file=load_path or save_path or DEFAULT_TEMPLATE_FILENAME,
        save_file=save_path,
    )

# --- Session Setup ---

def _build_default_headers(config):
    """Builds the default request headers for every call."""
    return {
        'User-Agent': config.get('user_agent', USER_AGENT),
        'Accept': JSON_CONTENT_TYPE,
    }

def setup_session(config):
    """Creates and configures the requests session."""
    session = requests.Session()
    session.headers.update(_build_default_headers(config))
    if config.get('proxies'):
        session.proxies.update(config['proxies'])
    session.verify = config.get('ssl_verify', True)
    return session

# --- Flow Query Client ---

class FlowQueryClient:
    """Runs the flow query workflow over one authenticated session."""

    def __init__(self, session, base_url, poll_interval=DEFAULT_POLL_INTERVAL, poll_timeout=None,
                 sleep=time.sleep, clock=time.monotonic):
        """
        Args:
            session (requests.Session): Session used for every call
            base_url (str): Service base URL, e.g. https://smc.example.com
            poll_interval (float): Seconds to wait between status polls
            poll_timeout (float, optional): Seconds after which polling gives up; None waits forever
            sleep, clock: Time functions, replaceable in tests
        """
        self.session = session
        self.base_url = base_url.rstrip('/')
        self.poll_interval = poll_interval
        self.poll_timeout = poll_timeout
        self._sleep = sleep
        self._clock = clock
        self.xsrf_token = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    @property
    def is_authenticated(self):
        return self.xsrf_token is not None

    def _queries_url(self, tenant):
        return f"{self.base_url}{FLOW_QUERIES_ENDPOINT_TEMPLATE.format(tenant)}"

    @safe_request_handler
    def authenticate(self, credentials):
        """Logs in and stores the XSRF token as a default session header.

        The password is cleared from the credentials once the call returns,
        whether it succeeded or not.

        Raises:
            AuthenticationError: On a non-200 response or a missing XSRF-TOKEN cookie
        """
        logging.info(f"--- Step 1: Authenticating as {credentials.username} ---")
        url = f"{self.base_url}{AUTHENTICATE_ENDPOINT}"
        try:
            response = self.session.post(
                url,
                data={'username': credentials.username, 'password': credentials.password},
                timeout=DEFAULT_REQUEST_TIMEOUT
            )
        finally:
            credentials.clear()

        log_response_headers(response, "Authentication Response Headers")
        if response.status_code != HTTP_OK:
            logging.error(f"Authentication failed with status code: {response.status_code}")
            raise AuthenticationError(f"Authentication failed with status code: {response.status_code}")

        log_session_cookies(self.session, "Cookies after authentication")
        token = self.session.cookies.get(XSRF_COOKIE_NAME)
        if not token:
            logging.error(f"Authentication response did not set the {XSRF_COOKIE_NAME} cookie.")
            raise AuthenticationError(f"No {XSRF_COOKIE_NAME} cookie in authentication response")

        self.xsrf_token = token
        self.session.headers.update({XSRF_HEADER_NAME: token})
        logging.info("Authentication successful, XSRF token obtained.")
        return token

    @safe_request_handler
    def submit_query(self, tenant, body_json):
        """Submits the query body and returns the new query id.

        Raises:
            QuerySubmissionError: On a non-201 response or a body without a query id
        """
        logging.info(f"--- Step 2: Submitting flow query for tenant {tenant} ---")
        url = self._queries_url(tenant)
        headers = {
            'Content-Type': JSON_CONTENT_TYPE,
            'Accept': JSON_CONTENT_TYPE,
        }
        log_request_headers(headers, "Query Submission Request Headers", self.session)
        logging.debug(f"Query Submission URL: {url}")
        logging.debug(f"Query Submission Payload: {body_json}")

        response = self.session.post(url, data=body_json, headers=headers, timeout=DEFAULT_REQUEST_TIMEOUT)
        log_response_headers(response, "Query Submission Response Headers")

        if response.status_code != HTTP_CREATED:
            logging.error(f"Query submission failed with status code: {response.status_code}")
            log_response_body(response, "Query submission")
            raise QuerySubmissionError(f"Query submission failed with status code: {response.status_code}")

        try:
            query = response.json()['data']['query']
            query_id = query['id']
        except (ValueError, KeyError, TypeError) as e:
            log_response_body(response, "Query submission")
            raise QuerySubmissionError(f"Query submission response has no query id: {e}")

        logging.info(f"Query submitted. Id: {query_id}, status: {query.get('status')}")
        return query_id

    def _read_percent_complete(self, response):
        try:
            return float(response.json()['data']['query']['percentComplete'])
        except (ValueError, KeyError, TypeError) as e:
            log_response_body(response, "Query status")
            raise QueryStatusError(f"Query status response has no percentComplete: {e}")

    @safe_request_handler
    def wait_for_query(self, tenant, query_id):
        """Polls the query status until percentComplete reaches 100.

        Returns:
            int: Number of status polls issued

        Raises:
            QueryStatusError: On a non-200 status response or a malformed status body
            QueryTimeoutError: When poll_timeout elapses before the query completes
        """
        logging.info(f"--- Step 3: Waiting for query {query_id} to complete ---")
        url = f"{self._queries_url(tenant)}/{query_id}"
        started = self._clock()
        polls = 0

        while True:
            response = self.session.get(url, timeout=DEFAULT_REQUEST_TIMEOUT)
            polls += 1
            if response.status_code != HTTP_OK:
                logging.error(f"Query status poll failed with status code: {response.status_code}")
                raise QueryStatusError(f"Query status poll failed with status code: {response.status_code}")

            percent_complete = self._read_percent_complete(response)
            logging.info(f"Query {query_id}: {percent_complete:g}% complete (poll {polls})")
            if percent_complete >= 100:
                return polls

            if self.poll_timeout is not None and self._clock() - started >= self.poll_timeout:
                logging.error(f"Query {query_id} did not complete within {self.poll_timeout:g} seconds.")
                raise QueryTimeoutError(
                    f"Query {query_id} still {percent_complete:g}% complete after {self.poll_timeout:g} seconds"
                )

            self._sleep(self.poll_interval)

    @safe_request_handler
    def fetch_results(self, tenant, query_id, output_file):
        """Downloads the query results and writes the raw body to output_file.

        Returns:
            int: Number of bytes written

        Raises:
            ResultFetchError: On a non-200 response
        """
        logging.info(f"--- Step 4: Fetching results of query {query_id} ---")
        url = f"{self._queries_url(tenant)}/{query_id}/results"
        response = self.session.get(url, timeout=DEFAULT_REQUEST_TIMEOUT)
        log_response_headers(response, "Query Results Response Headers")

        if response.status_code != HTTP_OK:
            log_response_body(response, "Query results")
            raise ResultFetchError(f"Fetching query results failed with status code: {response.status_code}")

        save_content_to_file(response.content, output_file, is_binary=True)
        return len(response.content)

    def logout(self):
        """Ends the server-side session. Failures are only logged."""
        try:
            response = self.session.delete(f"{self.base_url}{LOGOUT_ENDPOINT}", timeout=DEFAULT_REQUEST_TIMEOUT)
            logging.debug(f"Logout status code: {response.status_code}")
        except requests.exceptions.RequestException as e:
            logging.warning(f"Logout failed: {e}")
        self.xsrf_token = None

    def close(self):
        if self.is_authenticated:
            self.logout()
        self.session.close()

# --- Workflow ---

def run_flow_query(config, credentials, options, session=None, sleep=time.sleep):
    """Orchestrates the entire workflow: authenticate, submit, poll, save results.

    Returns:
        bool: True if the results were saved, False if they could not be fetched

    Raises:
        FlowQueryError: For authentication, submission, polling and network failures
        QueryConfigError: For invalid options or an unusable template
        OSError: If the template or result file cannot be written
    """
    logging.info("--- Starting Flow Query Workflow ---")
    options.validate()

    if session is None:
        session = setup_session(config)

    client = FlowQueryClient(
        session,
        config['base_url'],
        poll_interval=config.get('poll_interval', DEFAULT_POLL_INTERVAL),
        poll_timeout=config.get('poll_timeout'),
        sleep=sleep,
    )
    with client:
        client.authenticate(credentials)

        body_json = build_query_body(options)
        query_id = client.submit_query(config['tenant'], body_json)
        client.wait_for_query(config['tenant'], query_id)

        try:
            size = client.fetch_results(config['tenant'], query_id, config['output_file'])
        except ResultFetchError as e:
            logging.error(f"{e}. No results were saved.")
            return False

    logging.info(f"Saved {size} bytes of query results to {config['output_file']}")
    return True

def main(argv=None):
    """Main entry point for the script."""
    parser = create_parser()
    args = parser.parse_args(argv)
    configure_logging(args.debug)
    logging.info("Application started.")

    try:
        config = get_config(args)
        options = build_query_options(args)
        credentials = get_credentials(config)

        if run_flow_query(config, credentials, options):
            logging.info("Flow query workflow finished successfully.")
            return EXIT_SUCCESS
        logging.error("Flow query workflow finished without results.")
        return EXIT_RESULTS_NOT_FETCHED

    except KeyboardInterrupt:
        logging.warning("Interrupted. Flow query workflow aborted.")
        return EXIT_INTERRUPTED
    except (FlowQueryError, QueryConfigError) as e:
        logging.error(f"Flow query workflow failed: {e}")
        return EXIT_FAILURE
    except OSError as e:
        logging.error(f"File error: {e}")
        return EXIT_FAILURE
    except Exception as e:
        logging.exception(f"An unhandled error occurred in main: {e}")
        return EXIT_FAILURE

if __name__ == "__main__":
    sys.exit(main())
