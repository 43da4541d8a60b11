"""Rich colors for CLI output, keyed by what is being printed."""

from dataclasses import dataclass


@dataclass(frozen=True)
class CliTheme:
    event: str = "#C678DD"  # frame and broadcast names
    payload: str = "#E6EDF3"  # frame data, result JSON, table values
    dim: str = "#7F848E"  # trace ids, table keys, side notes
    plan: str = "#56B6C2"
    running: str = "#61AFEF"
    success: str = "#98C379"
    error: str = "#E06C75"
    notice: str = "#E5C07B"  # queued, handoff, cancellation, timeouts
    toast: str = "#D19A66"
    border: str = "#3E4451"


THEME = CliTheme()
