"""Dice rolling oracle for d20 combat resolution."""

import logging
import random
import re
from dataclasses import dataclass, replace
from enum import Enum

logger = logging.getLogger(__name__)

MAX_DICE = 100
MIN_SIDES = 2
MAX_SIDES = 1000


class RollType(Enum):
    """Type of roll modification."""

    NORMAL = "normal"
    ADVANTAGE = "advantage"
    DISADVANTAGE = "disadvantage"
    DROP_LOWEST = "drop_lowest"
    DROP_HIGHEST = "drop_highest"
    KEEP_HIGHEST = "keep_highest"
    KEEP_LOWEST = "keep_lowest"


@dataclass
class DiceResult:
    """Result of a dice roll with full details."""

    notation: str
    rolls: list[int]
    kept: list[int]
    dropped: list[int]
    modifier: int
    total: int
    roll_type: RollType = RollType.NORMAL
    is_critical: bool = False
    is_fumble: bool = False
    natural_roll: int | None = None  # For single kept d20, the unmodified result

    def __str__(self) -> str:
        """Human-readable representation of the roll."""
        parts = [f"{self.notation}:"]

        if self.dropped:
            all_rolls = f"[{', '.join(str(r) for r in self.rolls)}]"
            kept_rolls = f"kept [{', '.join(str(r) for r in self.kept)}]"
            parts.append(f"{all_rolls} {kept_rolls}")
        else:
            parts.append(f"[{', '.join(str(r) for r in self.kept)}]")

        if self.modifier != 0:
            sign = "+" if self.modifier > 0 else ""
            parts.append(f"{sign}{self.modifier}")

        parts.append(f"= {self.total}")

        if self.is_critical:
            parts.append("(NAT 20)")
        elif self.is_fumble:
            parts.append("(NAT 1)")

        return " ".join(parts)


@dataclass
class DicePool:
    """Represents a pool of dice to roll."""

    count: int
    sides: int
    modifier: int = 0
    roll_type: RollType = RollType.NORMAL
    drop_count: int = 0
    keep_count: int | None = None

    @property
    def notation(self) -> str:
        """Canonical notation string for this pool."""
        parts = [f"{self.count}d{self.sides}"]

        if self.roll_type == RollType.KEEP_HIGHEST and self.keep_count:
            parts.append(f"kh{self.keep_count}")
        elif self.roll_type == RollType.KEEP_LOWEST and self.keep_count:
            parts.append(f"kl{self.keep_count}")
        elif self.roll_type == RollType.DROP_HIGHEST:
            parts.append(f"dh{self.drop_count}")
        elif self.roll_type == RollType.DROP_LOWEST:
            parts.append(f"dl{self.drop_count}")

        if self.modifier > 0:
            parts.append(f"+{self.modifier}")
        elif self.modifier < 0:
            parts.append(str(self.modifier))

        if self.roll_type == RollType.ADVANTAGE:
            parts.append(" advantage")
        elif self.roll_type == RollType.DISADVANTAGE:
            parts.append(" disadvantage")

        return "".join(parts)


class DiceRoller:
    """Dice rolling engine with notation parsing.

    The random source is injected so that resolution logic can be driven
    by a seeded or scripted generator.
    """

    # Matches: 1d20, 2d6+4, 4d6dl1, 2d20kh1-1, 1d20 advantage
    DICE_PATTERN = re.compile(
        r"^(\d+)?d(\d+)"  # NdX (N is optional, defaults to 1)
        r"(kh\d+|kl\d+|dh\d+|dl\d+)?"  # Optional keep/drop suffix
        r"([+-]\d+)?"  # Optional modifier
        r"(?:\s*(adv|advantage|dis|disadvantage))?"  # Advantage/disadvantage
        r"$",
        re.IGNORECASE,
    )

    def __init__(self, rng: random.Random | None = None):
        """Initialize the dice roller.

        Args:
            rng: Random number generator instance. Uses default if not provided.
        """
        self.rng = rng or random.Random()

    def seed(self, seed: int | str) -> None:
        """Seed the random number generator for reproducible rolls.

        Args:
            seed: Seed value
        """
        self.rng.seed(seed)

    def parse_notation(self, notation: str) -> DicePool:
        """Parse dice notation string into a DicePool.

        Args:
            notation: Dice notation string (e.g., "2d6+4", "4d6dl1", "1d20 advantage")

        Returns:
            DicePool with parsed parameters

        Raises:
            ValueError: If notation is invalid
        """
        cleaned = " ".join(notation.strip().lower().split())
        # Whitespace is only meaningful before an advantage keyword
        cleaned = re.sub(r"\s+(?=[+\-]|k|d[hl])", "", cleaned)
        cleaned = re.sub(r"(?<=[+\-])\s+", "", cleaned)
        match = self.DICE_PATTERN.match(cleaned)

        if not match:
            raise ValueError(f"Invalid dice notation: {notation!r}")

        count = int(match.group(1)) if match.group(1) else 1
        sides = int(match.group(2))
        modifier = int(match.group(4)) if match.group(4) else 0

        if count < 1 or count > MAX_DICE:
            raise ValueError(f"Invalid number of dice: {count}")
        if sides < MIN_SIDES or sides > MAX_SIDES:
            raise ValueError(f"Invalid die size: {sides}")

        roll_type = RollType.NORMAL
        drop_count = 0
        keep_count = None

        keep_drop = match.group(3)
        if keep_drop:
            kind, amount = keep_drop[:2], int(keep_drop[2:])
            if amount > count:
                raise ValueError(f"Cannot keep/drop {amount} from {count} dice")
            if kind == "kh":
                roll_type, keep_count = RollType.KEEP_HIGHEST, amount
            elif kind == "kl":
                roll_type, keep_count = RollType.KEEP_LOWEST, amount
            elif kind == "dh":
                roll_type, drop_count = RollType.DROP_HIGHEST, amount
            else:
                roll_type, drop_count = RollType.DROP_LOWEST, amount

        adv_dis = match.group(5)
        if adv_dis:
            if keep_drop:
                raise ValueError(f"Cannot combine keep/drop with advantage: {notation!r}")
            if adv_dis in ("adv", "advantage"):
                roll_type = RollType.ADVANTAGE
            else:
                roll_type = RollType.DISADVANTAGE

        return DicePool(
            count=count,
            sides=sides,
            modifier=modifier,
            roll_type=roll_type,
            drop_count=drop_count,
            keep_count=keep_count,
        )

    def roll_pool(self, pool: DicePool) -> DiceResult:
        """Roll a dice pool and return the result.

        Args:
            pool: DicePool to roll

        Returns:
            DiceResult with full roll details
        """
        # Advantage/disadvantage always rolls exactly two dice
        if pool.roll_type == RollType.ADVANTAGE:
            rolls = [self.rng.randint(1, pool.sides) for _ in range(2)]
            kept = [max(rolls)]
            dropped = [min(rolls)]
        elif pool.roll_type == RollType.DISADVANTAGE:
            rolls = [self.rng.randint(1, pool.sides) for _ in range(2)]
            kept = [min(rolls)]
            dropped = [max(rolls)]
        else:
            rolls = [self.rng.randint(1, pool.sides) for _ in range(pool.count)]
            sorted_rolls = sorted(rolls)

            if pool.roll_type == RollType.DROP_LOWEST:
                dropped = sorted_rolls[: pool.drop_count]
                kept = sorted_rolls[pool.drop_count :]
            elif pool.roll_type == RollType.DROP_HIGHEST:
                dropped = sorted_rolls[len(sorted_rolls) - pool.drop_count :]
                kept = sorted_rolls[: len(sorted_rolls) - pool.drop_count]
            elif pool.roll_type == RollType.KEEP_HIGHEST and pool.keep_count:
                kept = sorted_rolls[-pool.keep_count :]
                dropped = sorted_rolls[: -pool.keep_count] if pool.keep_count < len(sorted_rolls) else []
            elif pool.roll_type == RollType.KEEP_LOWEST and pool.keep_count:
                kept = sorted_rolls[: pool.keep_count]
                dropped = sorted_rolls[pool.keep_count :]
            else:
                kept = rolls
                dropped = []

        total = sum(kept) + pool.modifier

        natural_roll = None
        is_critical = False
        is_fumble = False

        if pool.sides == 20 and len(kept) == 1:
            natural_roll = kept[0]
            is_critical = natural_roll == 20
            is_fumble = natural_roll == 1

        result = DiceResult(
            notation=pool.notation,
            rolls=rolls,
            kept=kept,
            dropped=dropped,
            modifier=pool.modifier,
            total=total,
            roll_type=pool.roll_type,
            is_critical=is_critical,
            is_fumble=is_fumble,
            natural_roll=natural_roll,
        )
        logger.debug(f"Rolled {result}")
        return result

    def roll(self, notation: str) -> DiceResult:
        """Parse and roll dice from notation string.

        Args:
            notation: Dice notation string

        Returns:
            DiceResult with full roll details
        """
        pool = self.parse_notation(notation)
        return self.roll_pool(pool)

    def roll_d20(self, roll_type: RollType = RollType.NORMAL) -> DiceResult:
        """Roll a single d20 check, optionally with advantage or disadvantage.

        Args:
            roll_type: NORMAL, ADVANTAGE or DISADVANTAGE

        Returns:
            DiceResult whose natural_roll is the kept die
        """
        return self.roll_pool(DicePool(count=1, sides=20, roll_type=roll_type))


def dice_only(pool: DicePool) -> DicePool:
    """Return a copy of the pool without its flat modifier.

    Critical hits roll the dice portion of a damage expression again;
    the modifier is only counted once.
    """
    return replace(pool, modifier=0)


def roll(notation: str) -> DiceResult:
    """Quick roll function using a fresh roller.

    Args:
        notation: Dice notation string

    Returns:
        DiceResult with full roll details
    """
    return DiceRoller().roll(notation)
