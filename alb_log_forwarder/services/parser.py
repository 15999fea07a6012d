"""
Parser for AWS Application Load Balancer access log lines

The line format is described declaratively by ALB_ACCESS_LOG_GRAMMAR, an ordered
list of (field_name, token_kind) pairs consumed by one generic tokenizer. Field
names starting with an underscore are consumed positionally but not kept.

See https://docs.aws.amazon.com/elasticloadbalancing/latest/application/load-balancer-access-logs.html
"""

import logging
import re
from typing import Dict, List, Optional, Sequence, Tuple

from alb_log_forwarder.exceptions import ParseError

logger = logging.getLogger(__name__)

# Token kinds
BARE = 'bare'
QUOTED = 'quoted'
# Zero or more consecutive quoted tokens (fields missing from older log versions)
QUOTED_RUN = 'quoted_run'

ALB_ACCESS_LOG_GRAMMAR: Tuple[Tuple[str, str], ...] = (
    ('type', BARE),
    ('time', BARE),
    ('elb', BARE),
    ('client', BARE),
    ('target', BARE),
    ('req_proc_time', BARE),
    ('target_proc_time', BARE),
    ('resp_proc_time', BARE),
    ('elb_status', BARE),
    ('target_status', BARE),
    ('recv_bytes', BARE),
    ('sent_bytes', BARE),
    ('request', QUOTED),
    ('user_agent', QUOTED),
    ('_ssl_cipher', BARE),
    ('_ssl_protocol', BARE),
    ('target_group_arn', BARE),
    ('trace_id', QUOTED),
    ('_domain_name_and_cert_arn', QUOTED_RUN),
    ('match_priority', BARE),
    ('req_creation_time', BARE),
    ('action_executed', QUOTED),
    ('_redirect_url', QUOTED),
    ('_error_reason', QUOTED),
    ('target_list', QUOTED),
    ('status_code', QUOTED),
)

# A quoted token may contain spaces and backslash-escaped quotes
TOKEN_PATTERN = re.compile(r'"((?:[^"\\]|\\.)*)"|(\S+)')

MAX_LOGGED_PARSE_ERRORS = 5

ParsedLogRecord = Dict[str, str]


def tokenize(line: str) -> List[Tuple[str, str]]:
    """
    Split a log line into (token_kind, value) pairs

    Quoted values are returned without the surrounding quotes and otherwise verbatim.
    """
    tokens = []
    for match in TOKEN_PATTERN.finditer(line):
        quoted, bare = match.groups()
        if quoted is not None:
            tokens.append((QUOTED, quoted))
        else:
            tokens.append((BARE, bare))
    return tokens


class LogLineParser:
    """
    Positional parser driven by a field grammar.

    Every successfully parsed record contains exactly the kept fields of the grammar,
    in grammar order. Tokens after the last grammar entry are ignored, which keeps the
    parser compatible with newer log versions that append fields.
    """

    def __init__(self, grammar: Sequence[Tuple[str, str]] = ALB_ACCESS_LOG_GRAMMAR):
        for name, kind in grammar:
            if kind not in (BARE, QUOTED, QUOTED_RUN):
                raise ValueError(f"Unknown token kind '{kind}' for field '{name}'")
            if kind == QUOTED_RUN and not name.startswith('_'):
                raise ValueError(f"Field '{name}' of kind {QUOTED_RUN} cannot be kept")
        self.grammar = tuple(grammar)
        self.field_names = tuple(name for name, _ in self.grammar if not name.startswith('_'))

    def parse_line(self, line: str, line_number: Optional[int] = None) -> ParsedLogRecord:
        """
        Parse one access log line

        Args:
            line: Raw log line
            line_number: Position of the line in its blob, used in error messages

        Returns:
            Ordered mapping of field name to string value

        Raises:
            ParseError: If the line does not match the grammar
        """
        tokens = tokenize(line)
        record = {}
        position = 0

        for name, kind in self.grammar:
            if kind == QUOTED_RUN:
                while position < len(tokens) and tokens[position][0] == QUOTED:
                    position += 1
                continue

            if position >= len(tokens):
                raise ParseError(
                    f"Line ended before field '{name.lstrip('_')}' ({len(tokens)} tokens)",
                    field=name.lstrip('_'),
                    line_number=line_number
                )

            token_kind, value = tokens[position]
            if token_kind != kind:
                raise ParseError(
                    f"Expected {kind} token for field '{name.lstrip('_')}', got {token_kind} token: {value[:50]}",
                    field=name.lstrip('_'),
                    line_number=line_number
                )

            if not name.startswith('_'):
                record[name] = value
            position += 1

        return record

    def parse_blob_with_stats(self, blob: str) -> Tuple[List[ParsedLogRecord], int]:
        """
        Parse every complete line of a decompressed log object

        The final element after splitting on newlines is always discarded: it is
        either empty (trailing newline) or a truncated line. Lines that fail to parse
        are logged and skipped.

        Returns:
            Tuple of (records, skipped_line_count)
        """
        lines = blob.split('\n')
        lines.pop()

        records = []
        skipped = 0
        for line_number, line in enumerate(lines, start=1):
            try:
                records.append(self.parse_line(line, line_number=line_number))
            except ParseError as e:
                skipped += 1
                if skipped <= MAX_LOGGED_PARSE_ERRORS:
                    logger.warning(f"Skipping line {line_number}: {str(e)}, content: {line[:100]}...")
                else:
                    logger.debug(f"Skipping line {line_number}: {str(e)}")

        if skipped:
            logger.info(f"Line parsing results: {len(records)} successful, {skipped} skipped")

        return records, skipped

    def parse_blob(self, blob: str) -> List[ParsedLogRecord]:
        """Parse a decompressed log object, skipping malformed lines"""
        records, _ = self.parse_blob_with_stats(blob)
        return records
