class PokerError(Exception):
    """Base class for every error raised by the table engine"""


class InvariantError(PokerError):
    pass


class IllegalActionError(PokerError):
    """The action breaks the betting rules; the table state is left untouched"""


class InsufficientChipsError(IllegalActionError):
    def __init__(self, required: int, available: int):
        super().__init__(f"Not enough chips: need {required}, have {available}")
        self.required = required
        self.available = available


class NotPlayersTurnError(IllegalActionError):
    def __init__(self, player_id: str, current_player_id: str):
        super().__init__(f"It is {current_player_id}'s turn, not {player_id}'s")
        self.player_id = player_id
        self.current_player_id = current_player_id


class StaleDecisionError(PokerError):
    """An AI decision arrived after the turn it was requested for had passed"""


class NoEligibleActorError(PokerError):
    pass


class GameOverError(PokerError):
    pass


class ReplayError(PokerError):
    pass
