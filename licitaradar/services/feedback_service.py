"""Relevance feedback (thumbs up/down per user and record)."""

from typing import Dict, Optional

from sqlalchemy.orm import sessionmaker

from licitaradar.core.constants import VOTE_DOWN, VOTE_UP
from licitaradar.core.exceptions import InputValidationError
from licitaradar.core.logging import get_logger
from licitaradar.db.repositories import VoteRepository
from licitaradar.db.session import get_session

logger = get_logger("services.feedback")


class FeedbackService:
    """Records one vote per (user, record); a new vote replaces the old one."""

    def __init__(self, session_factory: Optional[sessionmaker] = None):
        self._session_factory = session_factory

    def record_vote(self, user_id: str, control_number: str, vote: int) -> Dict[str, object]:
        """Store the vote of ``user_id`` for ``control_number``.

        The returned dict carries ``previous_vote`` (``None`` on a first vote).

        Raises:
            InputValidationError: If an id is blank or the vote is not +1/-1
        """
        if not user_id:
            raise InputValidationError("Usuário não informado", field="user_id")
        if not control_number:
            raise InputValidationError("ID da licitação é obrigatório", field="control_number")
        if isinstance(vote, bool) or vote not in (VOTE_UP, VOTE_DOWN):
            raise InputValidationError("Voto deve ser 1 ou -1", field="vote")

        with get_session(self._session_factory) as session:
            votes = VoteRepository(session)
            existing = votes.get_vote(user_id, control_number)
            previous = existing.vote if existing is not None else None
            votes.upsert_vote(user_id, control_number, vote)

        if previous is None:
            logger.info("Voto %+d registrado para %s", vote, control_number)
        elif previous != vote:
            logger.info("Voto alterado de %+d para %+d em %s", previous, vote, control_number)
        return {
            "user_id": user_id,
            "control_number": control_number,
            "vote": vote,
            "previous_vote": previous,
        }

    def votes_for(self, control_number: str) -> Dict[str, int]:
        with get_session(self._session_factory) as session:
            return VoteRepository(session).count_for(control_number)
