"""
baseline_seeds.py

Curated TMDB ids used to bootstrap wildcard comparisons before the engine
switches to popularity-driven discovery. Duplicates are removed, first
occurrence order kept.
"""
from typing import Dict, List

from rankbuddy.schemas import MediaType

_BASELINE_MOVIE_IDS = [
    238, 155, 120, 121, 122, 27205, 157336, 98, 37165, 244786,
    1124, 68718, 438631, 10681, 77, 299536, 324857, 569094, 16869, 49026,
    354912, 299534, 475557, 641, 10193, 301528, 38, 14160, 872585, 107,
    530915, 106646, 556574, 490132, 272, 11324, 601434, 7491, 361743, 359724,
    6977, 453, 24, 146233, 12, 508439, 752, 150540, 359940, 640,
    59440, 12444, 2649, 70, 76341, 634649, 76203, 120467, 324786, 210577,
    2062, 585, 10191, 263115, 227306, 22, 264644, 4800, 80, 9806,
    28178, 96721, 5915, 50014, 9522, 289, 872, 496243, 637, 603,
    550, 769, 680, 278, 13, 857, 597, 497, 14, 745,
    807, 4995, 627, 629, 500, 621, 197, 105, 78, 679,
    562, 9377, 2108, 218, 694, 85, 1891, 601, 620, 744,
    111, 106, 9340, 235, 600, 793, 1578, 2493,
]

_BASELINE_TV_IDS = [
    1399, 46648, 62286, 1396, 60059, 1668, 456, 4614, 1390, 4026,
    1434, 18165, 46261, 1402, 2316, 1429, 1398, 1622, 31911, 46952,
    73586, 60735, 1100, 1408, 67915, 1433, 1403, 4607, 1412, 1413,
    1415, 1405, 1407, 1409, 1410, 1411,
]


def _unique(ids: List[int]) -> List[int]:
    return list(dict.fromkeys(ids))


BASELINE_IDS: Dict[MediaType, List[int]] = {
    MediaType.MOVIE: _unique(_BASELINE_MOVIE_IDS),
    MediaType.TV: _unique(_BASELINE_TV_IDS),
}
