"""People-you-may-know suggestions exports."""

from . import cards, ranker, schemas, scoring, service  # noqa: F401
from .exceptions import ConnectRequestFailed, InvalidSuggestionTarget, InvalidWeightsError  # noqa: F401
from .models import (  # noqa: F401
	DEFAULT_RANKING_WEIGHTS,
	ConnectionEdge,
	RankingWeights,
	ScoredCandidate,
	User,
)
