import asyncio
import logging
import random
import re
from abc import ABC, abstractmethod
from typing import List, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator

from betting_engine import ActionType, TableState, legal_actions
from poker_errors import IllegalActionError
from poker_game import cards_to_labels

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """You are an expert Texas Hold'em poker player. Always answer with a JSON object containing "action", "amount" and "reason" fields.
"action" must be one of: FOLD, CHECK, CALL, BET, RAISE, ALL_IN.
For BET, "amount" is the size of the bet. For RAISE, "amount" is the new total bet for this round and must be greater than the current bet.
When choosing an amount, consider the pot size, the current bet, your remaining chips, the phase of the hand and the action so far.
Never bet more chips than you have and avoid raises that are far too small or far too large for the pot."""


class PublicPlayer(BaseModel):
    id: str
    name: str
    chips: int
    folded: bool
    contribution: int
    is_ai: bool = False
    last_action: Optional[str] = None


class DecisionRequest(BaseModel):
    """Everything the acting player is allowed to see."""
    player_id: str
    player_name: str
    hole_cards: List[str]
    chips: int
    contribution: int
    hand_number: int
    phase: str
    pot: int
    current_bet: int
    call_amount: int
    community_cards: List[str]
    players: List[PublicPlayer]
    legal_actions: List[ActionType]
    min_raise_to: Optional[int] = None
    max_raise_to: Optional[int] = None
    history: List[str] = Field(default_factory=list)

    @classmethod
    def from_state(cls, state: TableState, history: Optional[List[str]] = None) -> "DecisionRequest":
        player = state.current_player
        if player is None:
            raise IllegalActionError("No player is waiting to act")
        legal = legal_actions(state)
        return cls(
            player_id=player.id,
            player_name=player.name,
            hole_cards=cards_to_labels(player.hole_cards),
            chips=player.chips,
            contribution=player.contribution,
            hand_number=state.hand_number,
            phase=state.phase.value,
            pot=state.pot,
            current_bet=state.current_bet,
            call_amount=legal.call_amount,
            community_cards=cards_to_labels(state.community_cards),
            players=[
                PublicPlayer(id=p.id, name=p.name, chips=p.chips, folded=p.folded,
                             contribution=p.contribution, is_ai=p.is_ai, last_action=p.last_action)
                for p in state.players
            ],
            legal_actions=list(legal.actions),
            min_raise_to=legal.min_raise_to,
            max_raise_to=legal.max_raise_to,
            history=list(history or []),
        )


class AIDecision(BaseModel):
    action: ActionType
    amount: Optional[int] = None
    reason: Optional[str] = None

    @field_validator("action", mode="before")
    @classmethod
    def normalise_action(cls, value):
        try:
            return ActionType.parse(value)
        except IllegalActionError as exc:
            raise ValueError(str(exc)) from exc


class AIPlayer(ABC):
    def __init__(self, name: str):
        self.name = name
        self.total_hands = 0
        self.hands_won = 0
        self.total_winnings = 0

    @abstractmethod
    async def make_decision(self, request: DecisionRequest) -> AIDecision:
        pass

    def get_game_context(self, request: DecisionRequest) -> str:
        players = "\n".join(
            f"  * {p.name}: {p.chips} chips, {p.contribution} in this round"
            f"{' (folded)' if p.folded else ''}{f' - {p.last_action}' if p.last_action else ''}"
            for p in request.players
        )
        history = "\n".join(f"{idx}. {line}" for idx, line in enumerate(request.history, 1))
        raise_range = ""
        if request.min_raise_to is not None:
            raise_range = f"\nBet/raise range: {request.min_raise_to} to {request.max_raise_to}"

        context = f"""You are playing Texas Hold'em poker. Here's the current situation:

Your hole cards: {', '.join(request.hole_cards)}
Community cards: {', '.join(request.community_cards) if request.community_cards else 'None yet'}
Phase: {request.phase}
Pot size: ${request.pot}
Current bet: ${request.current_bet}
Your chips: ${request.chips}
Already in this round: ${request.contribution}
To call: ${request.call_amount}

Players:
{players}

Action so far this hand:
{history or 'None'}

Legal actions: {', '.join(action.value for action in request.legal_actions)}{raise_range}

Respond with JSON format: {{"action": "FOLD/CHECK/CALL/BET/RAISE/ALL_IN", "amount": 0, "reason": ""}}

Consider your hand strength, pot odds, and position. Play strategically to maximize your winnings."""
        return context

    @staticmethod
    def fallback_decision(request: DecisionRequest) -> AIDecision:
        # Default conservative play
        if ActionType.CHECK in request.legal_actions:
            return AIDecision(action=ActionType.CHECK, reason="fallback")
        return AIDecision(action=ActionType.FOLD, reason="fallback")


def find_the_json(text: str) -> Optional[str]:
    left_brace = text.find("{")
    right_brace = text.rfind("}")
    if left_brace == -1 or right_brace == -1 or right_brace < left_brace:
        return None
    return text[left_brace:right_brace+1]


TEXT_ACTIONS = {
    "fold": ActionType.FOLD,
    "all-in": ActionType.ALL_IN,
    "all in": ActionType.ALL_IN,
    "all_in": ActionType.ALL_IN,
    "call": ActionType.CALL,
    "raise": ActionType.RAISE,
    "raising": ActionType.RAISE,
    "bet": ActionType.BET,
    "betting": ActionType.BET,
    "check": ActionType.CHECK,
}
TEXT_ACTION_PATTERN = re.compile(r"\b(" + "|".join(re.escape(k) for k in TEXT_ACTIONS) + r")(?:s|d|ed|ing)?\b")


def parse_decision(text: Optional[str], request: DecisionRequest) -> AIDecision:
    """Turn a model reply into a decision, falling back to keyword matching.

    Without usable JSON the first action word in the reply wins.
    """
    text = text or ""
    payload = find_the_json(text)
    if payload is not None:
        try:
            return AIDecision.model_validate_json(payload)
        except ValidationError as e:
            logger.warning("Unusable decision from model: %s (%s)", payload, e.errors()[0]["msg"])

    match = TEXT_ACTION_PATTERN.search(text.lower())
    if match:
        action = TEXT_ACTIONS[match.group(1)]
        amount = request.min_raise_to if action in (ActionType.BET, ActionType.RAISE) else None
        return AIDecision(action=action, amount=amount, reason="parsed from free text")
    return AIPlayer.fallback_decision(request)


class OpenAIPlayer(AIPlayer):
    def __init__(self, name: str, api_key: str, model: str = "gpt-4o",
                 base_url: Optional[str] = None):
        super().__init__(name)
        self.api_key = api_key
        self.model = model
        self.base_url = base_url

    async def make_decision(self, request: DecisionRequest) -> AIDecision:
        try:
            from openai import AsyncOpenAI
            client = AsyncOpenAI(api_key=self.api_key, base_url=self.base_url)

            context = self.get_game_context(request)

            # o1 models have different parameters
            if "o1" in self.model:
                messages = [{"role": "user", "content": f"{SYSTEM_PROMPT}\n\n{context}"}]
                response = await client.chat.completions.create(
                    model=self.model,
                    messages=messages,
                    max_completion_tokens=300
                )
            else:
                messages = [
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": context}
                ]
                response = await client.chat.completions.create(
                    model=self.model,
                    messages=messages,
                    temperature=0.7,
                    max_tokens=300,
                    response_format={"type": "json_object"}
                )

            decision_text = (response.choices[0].message.content or "").strip()
            logger.debug("%s replied: %s", self.name, decision_text)
            return parse_decision(decision_text, request)

        except Exception as e:
            logger.warning("Error with OpenAI player %s: %s", self.name, e)
            return self.fallback_decision(request)


class AnthropicPlayer(AIPlayer):
    def __init__(self, name: str, api_key: str, model: str = "claude-sonnet-4-20250514"):
        super().__init__(name)
        self.api_key = api_key
        self.model = model

    async def make_decision(self, request: DecisionRequest) -> AIDecision:
        try:
            import anthropic
            client = anthropic.Anthropic(api_key=self.api_key)

            context = self.get_game_context(request)

            message = await asyncio.to_thread(
                client.messages.create,
                model=self.model,
                max_tokens=300,
                temperature=0.7,
                system=SYSTEM_PROMPT,
                messages=[
                    {"role": "user", "content": context}
                ]
            )

            decision_text = message.content[0].text.strip()
            logger.debug("%s replied: %s", self.name, decision_text)
            return parse_decision(decision_text, request)

        except Exception as e:
            logger.warning("Error with Anthropic player %s: %s", self.name, e)
            return self.fallback_decision(request)


class RandomPlayer(AIPlayer):
    def __init__(self, name: str, rng: Optional[random.Random] = None):
        super().__init__(name)
        self.rng = rng or random.Random()

    async def make_decision(self, request: DecisionRequest) -> AIDecision:
        legal = request.legal_actions

        if request.call_amount == 0:
            # No bet to call, mostly check and sometimes bet
            if ActionType.BET in legal and self.rng.random() >= 0.7:
                return AIDecision(action=ActionType.BET, amount=self._pick_amount(request),
                                  reason="random bet")
            return AIDecision(action=ActionType.CHECK, reason="random check")

        if request.call_amount > request.chips // 2:
            # Bet is too large relative to stack
            return AIDecision(action=ActionType.FOLD, reason="bet too large")

        choice = self.rng.choices(["fold", "call", "raise"], weights=[0.3, 0.5, 0.2])[0]
        if choice == "raise" and ActionType.RAISE in legal:
            return AIDecision(action=ActionType.RAISE, amount=self._pick_amount(request),
                              reason="random raise")
        if choice == "fold" or ActionType.CALL not in legal:
            return AIDecision(action=ActionType.FOLD, reason="random fold")
        return AIDecision(action=ActionType.CALL, reason="random call")

    def _pick_amount(self, request: DecisionRequest) -> int:
        low = request.min_raise_to or 1
        high = max(low, min(request.max_raise_to or low, low * 2))
        return self.rng.randint(low, high)
