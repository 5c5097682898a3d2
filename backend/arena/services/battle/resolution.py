"""Deterministic turn resolution for networked battles.

The outcome of a turn depends only on the two revealed actions and the
combatants' fixed stats. There is no randomness, no critical hit and no
character ability here, so both clients can recompute and display exactly
what the server wrote.
"""

from dataclasses import asdict, dataclass
from enum import Enum

from arena.errors import ValidationError

BLOCK_HEAL = 10
COUNTER_RECOIL = 20
DOUBLE_COUNTER_RECOIL = 30


class Action(str, Enum):
    ATTACK = 'attack'
    BLOCK = 'block'
    COUNTER = 'counter'
    HEAL = 'heal'

    @classmethod
    def parse(cls, value):
        try:
            return cls(value)
        except ValueError:
            raise ValidationError(
                f'Invalid action: {value!r}',
                allowed=[a.value for a in cls],
            ) from None


# Client auto-submits this when its turn timer runs out
DEFAULT_ACTION = Action.HEAL


@dataclass(frozen=True)
class TurnOutcome:
    damage_to_a: int = 0
    damage_to_b: int = 0
    heal_a: int = 0
    heal_b: int = 0

    def to_dict(self):
        return asdict(self)


def _pct(value, percent):
    # Integer arithmetic: floor(value * percent / 100) without float rounding
    return (value * percent) // 100


def _attack_vs_attack(dmg_a, dmg_b, max_a, max_b):
    return TurnOutcome(damage_to_a=dmg_b, damage_to_b=dmg_a)


def _attack_vs_block(dmg_a, dmg_b, max_a, max_b):
    return TurnOutcome(damage_to_b=_pct(dmg_a, 30))


def _attack_vs_counter(dmg_a, dmg_b, max_a, max_b):
    return TurnOutcome(damage_to_a=_pct(dmg_b, 150), damage_to_b=_pct(dmg_a, 50))


def _attack_vs_heal(dmg_a, dmg_b, max_a, max_b):
    # Heal is interrupted but still restores 20%
    return TurnOutcome(damage_to_b=dmg_a, heal_b=_pct(max_b, 20))


def _block_vs_attack(dmg_a, dmg_b, max_a, max_b):
    return TurnOutcome(damage_to_a=_pct(dmg_b, 30))


def _block_vs_block(dmg_a, dmg_b, max_a, max_b):
    return TurnOutcome(heal_a=BLOCK_HEAL, heal_b=BLOCK_HEAL)


def _block_vs_counter(dmg_a, dmg_b, max_a, max_b):
    return TurnOutcome(damage_to_a=COUNTER_RECOIL)


def _block_vs_heal(dmg_a, dmg_b, max_a, max_b):
    return TurnOutcome(heal_a=BLOCK_HEAL, heal_b=_pct(max_b, 20))


def _counter_vs_attack(dmg_a, dmg_b, max_a, max_b):
    return TurnOutcome(damage_to_a=_pct(dmg_b, 50), damage_to_b=_pct(dmg_a, 150))


def _counter_vs_block(dmg_a, dmg_b, max_a, max_b):
    return TurnOutcome(damage_to_b=COUNTER_RECOIL)


def _counter_vs_counter(dmg_a, dmg_b, max_a, max_b):
    return TurnOutcome(damage_to_a=DOUBLE_COUNTER_RECOIL, damage_to_b=DOUBLE_COUNTER_RECOIL)


def _counter_vs_heal(dmg_a, dmg_b, max_a, max_b):
    return TurnOutcome(heal_b=_pct(max_b, 20))


def _heal_vs_attack(dmg_a, dmg_b, max_a, max_b):
    return TurnOutcome(damage_to_a=dmg_b, heal_a=_pct(max_a, 20))


def _heal_vs_block(dmg_a, dmg_b, max_a, max_b):
    return TurnOutcome(heal_a=_pct(max_a, 20), heal_b=BLOCK_HEAL)


def _heal_vs_counter(dmg_a, dmg_b, max_a, max_b):
    return TurnOutcome(heal_a=_pct(max_a, 20))


def _heal_vs_heal(dmg_a, dmg_b, max_a, max_b):
    return TurnOutcome(heal_a=_pct(max_a, 20), heal_b=_pct(max_b, 20))


# Row = player A's action, column = player B's action
INTERACTIONS = {
    (Action.ATTACK, Action.ATTACK): _attack_vs_attack,
    (Action.ATTACK, Action.BLOCK): _attack_vs_block,
    (Action.ATTACK, Action.COUNTER): _attack_vs_counter,
    (Action.ATTACK, Action.HEAL): _attack_vs_heal,
    (Action.BLOCK, Action.ATTACK): _block_vs_attack,
    (Action.BLOCK, Action.BLOCK): _block_vs_block,
    (Action.BLOCK, Action.COUNTER): _block_vs_counter,
    (Action.BLOCK, Action.HEAL): _block_vs_heal,
    (Action.COUNTER, Action.ATTACK): _counter_vs_attack,
    (Action.COUNTER, Action.BLOCK): _counter_vs_block,
    (Action.COUNTER, Action.COUNTER): _counter_vs_counter,
    (Action.COUNTER, Action.HEAL): _counter_vs_heal,
    (Action.HEAL, Action.ATTACK): _heal_vs_attack,
    (Action.HEAL, Action.BLOCK): _heal_vs_block,
    (Action.HEAL, Action.COUNTER): _heal_vs_counter,
    (Action.HEAL, Action.HEAL): _heal_vs_heal,
}


def resolve(action_a, action_b, damage_a: int, damage_b: int,
            max_health_a: int, max_health_b: int) -> TurnOutcome:
    """Compute damage taken and healing received by each side for one turn.

    ``damage_a``/``damage_b`` are the base damage of A and B; the returned
    ``damage_to_a`` is what A takes, not what A deals.
    """
    rule = INTERACTIONS[(Action.parse(action_a), Action.parse(action_b))]
    return rule(damage_a, damage_b, max_health_a, max_health_b)


def apply_health(health: int, damage_taken: int, heal_received: int, max_health: int) -> int:
    return min(max_health, max(0, health - damage_taken + heal_received))
