"""
Flow Query Request Builder

Builds the JSON body for a flow query job: a time window ending now, a record
limit and optional subject/peer/flow filters. The body can start from a saved
template file and can be written back to that file for later runs.

Template file format:
    {
        "startDateTime": "2026-10-19T07:00:00Z",
        "endDateTime": "2026-10-19T08:00:00Z",
        "recordLimit": 2000,
        "subject": {...},
        "peer": {...},
        "flow": {...}
    }

Filter objects are passed through to the API untouched.
"""

import json
import logging
import math
import os
from datetime import datetime, timedelta, timezone

# --- Constants ---
DEFAULT_TEMPLATE_FILENAME = "flow_query_template.json"
DEFAULT_RECORD_LIMIT = 2000
DEFAULT_LOOKBACK_HOURS = 1
TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%SZ"
FILTER_FIELDS = ('subject', 'peer', 'flow')


class QueryConfigError(Exception):
    """Raised when query options or configuration values are invalid."""
    pass

class TemplateConfigError(QueryConfigError):
    """Raised when a query template file is missing, unreadable or malformed."""
    pass


class QueryRequestOptions:
    """Everything the builder needs for one query body."""

    def __init__(self, hours=DEFAULT_LOOKBACK_HOURS, record_limit=DEFAULT_RECORD_LIMIT,
                 subject=None, peer=None, flow=None,
                 load=False, save=False, template_file=DEFAULT_TEMPLATE_FILENAME, save_file=None):
        """
        Args:
            hours (int|float): How far back the time window reaches from now
            record_limit (int): Maximum number of flow records to return
            subject (dict, optional): Subject (host) filter object
            peer (dict, optional): Peer filter object
            flow (dict, optional): Flow filter object
            load (bool): Start from the template file instead of an empty body
            save (bool): Write the built body to a template file
            template_file (str): Template file path read by load (and written by save
                unless save_file is given)
            save_file (str, optional): Template file path written by save
        """
        self.hours = hours
        self.record_limit = record_limit
        self.subject = subject
        self.peer = peer
        self.flow = flow
        self.load = load
        self.save = save
        self.template_file = template_file
        self.save_file = save_file

    @property
    def save_target(self):
        return self.save_file or self.template_file

    def filter_overrides(self):
        """Returns the filters the caller actually supplied, keyed by body field name."""
        overrides = {}
        for field in FILTER_FIELDS:
            value = getattr(self, field)
            if value:
                overrides[field] = value
        return overrides

    def validate(self):
        """Checks the numeric options before any file or network work happens."""
        if (isinstance(self.hours, bool) or not isinstance(self.hours, (int, float))
                or not math.isfinite(self.hours) or self.hours <= 0):
            raise QueryConfigError(f"Lookback hours must be a positive number, got: {self.hours!r}")
        # Raises QueryConfigError when the window start falls outside the datetime range
        compute_time_window(self.hours)
        if isinstance(self.record_limit, bool) or not isinstance(self.record_limit, int) or self.record_limit <= 0:
            raise QueryConfigError(f"Record limit must be a positive integer, got: {self.record_limit!r}")
        if self.load and not self.template_file:
            raise QueryConfigError("A template file path is required when loading a template")
        if self.save and not self.save_target:
            raise QueryConfigError("A template file path is required when saving a template")


def format_timestamp(moment):
    """Formats a datetime as a UTC ISO-8601 string, e.g. 2026-10-19T08:05:09Z."""
    if moment.tzinfo is not None:
        moment = moment.astimezone(timezone.utc)
    return moment.strftime(TIMESTAMP_FORMAT)

def compute_time_window(hours, now=None):
    """Returns (startDateTime, endDateTime) strings for a window ending at now."""
    if now is None:
        now = datetime.now(timezone.utc)
    try:
        start = now - timedelta(hours=hours)
    except OverflowError:
        raise QueryConfigError(f"Lookback of {hours!r} hours reaches outside the supported date range")
    return format_timestamp(start), format_timestamp(now)

def load_query_template(template_file):
    """Reads a saved query template.

    Raises:
        TemplateConfigError: If the file is missing, unreadable, not JSON or not a JSON object
    """
    logging.info(f"Loading query template from: {template_file}")
    if not os.path.exists(template_file):
        logging.error(f"Template file not found: {template_file}")
        raise TemplateConfigError(f"Template file not found: {template_file}")

    try:
        with open(template_file, 'r', encoding='utf-8') as f:
            template = json.load(f)
    except json.JSONDecodeError as e:
        logging.error(f"Invalid JSON in template file {template_file}: {e}")
        raise TemplateConfigError(f"Invalid JSON in template file {template_file}: {e}")
    except OSError as e:
        logging.error(f"Could not read template file {template_file}: {e}")
        raise TemplateConfigError(f"Could not read template file {template_file}: {e}")

    if not isinstance(template, dict):
        raise TemplateConfigError(f"Template file {template_file} must contain a JSON object")

    logging.debug(f"Template fields: {', '.join(template.keys()) or '(none)'}")
    return template

def save_query_template(body_json, template_file):
    """Writes a serialized query body to the template file. Write errors propagate."""
    with open(template_file, 'w', encoding='utf-8') as f:
        f.write(body_json)
    logging.info(f"--- Saved query template to: {template_file} ---")

def build_query(options, now=None):
    """Builds the query body as a dict.

    Time window and record limit always come from the options. Filters from the
    options replace the template's filters wholesale; filters the caller did not
    supply are kept from the template.
    """
    options.validate()

    if options.load:
        query = load_query_template(options.template_file)
    else:
        query = {}

    start, end = compute_time_window(options.hours, now)
    query['startDateTime'] = start
    query['endDateTime'] = end
    query['recordLimit'] = options.record_limit

    for field, value in options.filter_overrides().items():
        if options.load and field in query:
            logging.info(f"Overriding template '{field}' filter")
        query[field] = value

    return query

def serialize_query(query):
    """Serializes a query body. Nested filter arrays are kept at any depth."""
    return json.dumps(query, indent=2)

def build_query_body(options, now=None):
    """Builds and serializes the query body, saving it as a template when requested."""
    body_json = serialize_query(build_query(options, now))
    if options.save:
        save_query_template(body_json, options.save_target)
    return body_json

def load_filter_argument(value):
    """Parses a filter given on the command line.

    Accepts inline JSON text or '@path' pointing at a JSON file. Empty values
    return None so they count as "not supplied".
    """
    if value is None or not value.strip():
        return None

    source = "inline filter"
    text = value
    if value.startswith('@'):
        source = value[1:]
        try:
            with open(source, 'r', encoding='utf-8') as f:
                text = f.read()
        except OSError as e:
            raise QueryConfigError(f"Could not read filter file {source}: {e}")

    try:
        parsed = json.loads(text)
    except json.JSONDecodeError as e:
        raise QueryConfigError(f"Invalid JSON in {source}: {e}")

    if not isinstance(parsed, dict):
        raise QueryConfigError(f"Filter in {source} must be a JSON object")
    return parsed
