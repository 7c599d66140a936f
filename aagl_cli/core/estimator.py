"""
Guesses the version of an installed voice package from its size on disk.

Only used when the package directory carries no `.version` marker.
"""

from collections.abc import Mapping, Sequence

from aagl_cli.models.metadata import version_key

# Observed voice package footprints in bytes. Append new versions when they are
# seen in the wild; never edit existing rows.
VOICE_PACKAGES_SIZES: dict[str, dict[str, int]] = {
    "3.4.0": {
        "en-us": 9702104595,
        "ja-jp": 10879201351,
        "ko-kr": 8329592851,
        "zh-cn": 8498622343,
    },
    "3.3.0": {
        "en-us": 9183929971,
        "ja-jp": 10250403911,
        "ko-kr": 7896362859,
        "zh-cn": 8047012675,
    },
    "3.2.0": {
        "en-us": 8636001252,
        "ja-jp": 9600770928,
        "ko-kr": 7416414724,
        "zh-cn": 7563358032,
    },
}

# Extracted sizes drift between releases of the same version
SLACK_MARGIN_BYTES = 512 * 1024 * 1024


def predict_next_size(values: Sequence[float]) -> float:
    """
    Extrapolates the next value of a series (oldest first) with a weighted
    moving average of successive ratios. Ratio i is weighted by n-1-i.
    """
    n = len(values)
    if n == 0:
        return 0
    if n == 1:
        return values[0]
    if n == 2:
        return values[1] * (values[1] / values[0])

    weighted_sum = 0.0
    weights = 0
    for i in range(n - 1):
        weight = n - 1 - i
        weighted_sum += values[i + 1] / values[i] * weight
        weights += weight
    return values[-1] * weighted_sum / weights


def sizes_for_locale(
    size_history: Mapping[str, Mapping[str, int]], locale: str
) -> list[tuple[str, float]]:
    """Returns (version, size) pairs for `locale`, newest version first."""
    series = [
        (version, sizes[locale])
        for version, sizes in size_history.items()
        if locale in sizes
    ]
    series.sort(key=lambda item: version_key(item[0]), reverse=True)
    return series


def estimate_version(
    size_history: Mapping[str, Mapping[str, int]],
    locale: str,
    observed_bytes: int,
    latest_known_version: str,
) -> str | None:
    """
    Returns the newest version whose footprint, minus the slack margin, is still
    below `observed_bytes`, or None when the directory is smaller than every
    known footprint.
    """
    latest_key = version_key(latest_known_version)
    # Versions newer than the server's latest cannot be installed
    series = [
        (version, size)
        for version, size in sizes_for_locale(size_history, locale)
        if version_key(version) <= latest_key
    ]

    if not series or series[0][0] != latest_known_version:
        predicted = predict_next_size([size for _, size in reversed(series)])
        series.insert(0, (latest_known_version, predicted))

    for version, size in series:
        if observed_bytes > size - SLACK_MARGIN_BYTES:
            return version
    return None
