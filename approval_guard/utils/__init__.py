from .formatting import format_state_event, format_status_details, format_status_line
from .validators import parse_params, slug, validate_justification
