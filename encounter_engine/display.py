"""Markdown rendering for engine results."""

from typing import Any

from .game.conditions import (
    EXHAUSTION_LEVELS,
    ActiveCondition,
    ConditionKind,
    ConditionUpdate,
    EffectiveStats,
    TickReport,
    UpdateStatus,
)
from .game.encounter import Encounter, TurnAdvance

_UPDATE_HEADERS = {
    UpdateStatus.ADDED: "## 🔴 Condition Added",
    UpdateStatus.ALREADY_ACTIVE: "## ⚠️ Condition Already Active",
    UpdateStatus.REMOVED: "## 🟢 Condition Removed",
    UpdateStatus.CLEARED: "## 🟢 All Conditions Cleared",
    UpdateStatus.NOT_FOUND: "## ⚠️ Condition Not Found",
}

_EXHAUSTION_HEADERS = {
    UpdateStatus.ADDED: "## 🔴 Exhaustion Added",
    UpdateStatus.INCREASED: "## 🔴 Exhaustion Increased",
    UpdateStatus.REDUCED: "## 🟢 Exhaustion Reduced",
    UpdateStatus.REMOVED: "## 🟢 Exhaustion Removed",
}


def _condition_line(entry: ActiveCondition) -> str:
    parts = [f"**{entry.label}**"]
    duration = entry.duration_text()
    if duration:
        parts.append(f"({duration})")
    if entry.source:
        parts.append(f"from {entry.source}")
    if entry.save_dc:
        ability = f" {entry.save_ability.value.upper()}" if entry.save_ability else ""
        parts.append(f"[DC {entry.save_dc}{ability} save]")
    return "- " + " ".join(parts)


def render_condition_update(update: ConditionUpdate, name: str) -> str:
    """Render an add or remove on the condition ledger."""
    is_exhaustion = update.condition is ConditionKind.EXHAUSTION and update.status in _EXHAUSTION_HEADERS
    header = _EXHAUSTION_HEADERS[update.status] if is_exhaustion else _UPDATE_HEADERS[update.status]
    lines = [header, "", f"**Target:** {name}"]

    if update.status == UpdateStatus.NOT_FOUND:
        lines.append(f"*{name} does not have {update.condition.value}*")
        return "\n".join(lines)

    if update.status == UpdateStatus.CLEARED:
        if update.conditions:
            lines.append(f"**Removed:** {', '.join(c.label for c in update.conditions)}")
        else:
            lines.append("*No active conditions*")
        return "\n".join(lines)

    entry = update.conditions[0]
    lines.append("")
    if is_exhaustion:
        level = entry.exhaustion_level or 0
        if update.status == UpdateStatus.REMOVED:
            lines.append("Exhaustion fully recovered")
        else:
            lines.append(f"**Level {level}** of 6")
            for i in range(1, level + 1):
                lines.append(f"{i}. {EXHAUSTION_LEVELS[i]}")
            if level >= 6:
                lines.append("")
                lines.append("> ☠️ **Level 6: Death**")
    else:
        lines.append(_condition_line(entry))
        lines.append(f"> {entry.rules_text}")
    return "\n".join(lines)


def render_condition_query(name: str, conditions: list[ActiveCondition]) -> str:
    lines = [f"## 📋 Active Conditions: {name}", ""]
    if not conditions:
        lines.append("*No active conditions*")
    for entry in conditions:
        lines.append(_condition_line(entry))
    return "\n".join(lines)


def render_tick(name: str, report: TickReport) -> str:
    lines = [f"## ⏱️ Duration Tick: {name}", ""]
    if report.expired:
        lines.append("### Expired")
        lines.extend(f"- ~~{c.label}~~" for c in report.expired)
    if report.remaining:
        if report.expired:
            lines.append("")
        lines.append("### Remaining")
        lines.extend(f"- {c.label}: {c.duration_text()}" for c in report.remaining)
    if not report.expired and not report.remaining:
        lines.append("*No timed conditions*")
    return "\n".join(lines)


def render_batch(results: list[dict[str, Any]]) -> str:
    succeeded = sum(1 for r in results if r["success"])
    lines = [
        "## 📋 Batch Condition Update",
        "",
        f"**{succeeded}/{len(results)}** operations succeeded",
        "",
    ]
    for result in results:
        icon = "✅" if result["success"] else "❌"
        detail = result.get("error") or result.get("summary", "")
        lines.append(f"- {icon} **{result['target_id']}** {result['operation']}: {detail}")
    return "\n".join(lines)


def render_encounter(encounter: Encounter, title: str = "## ⚔️ Encounter Created") -> str:
    """Render an encounter with its initiative table and terrain."""
    lines = [
        title,
        "",
        f"**Round:** {encounter.round} | **Lighting:** {encounter.lighting.value} | "
        f"**Combatants:** {len(encounter.participants)}",
        "",
        "### Initiative Order",
        "",
        "| # | Name | Init | HP | AC | Pos |",
        "|:-:|------|:----:|:--:|:--:|:---:|",
    ]

    for i, p in enumerate(encounter.participants, start=1):
        markers = ""
        if p.surprised:
            markers += "😵"
        if p.size.value != "medium":
            markers += p.size.value[0].upper()
        name = f"{'🔴' if p.is_enemy else '🟢'} {p.name}"
        if markers:
            name += f" {markers}"
        current = " ▶" if i - 1 == encounter.turn_index else ""
        lines.append(f"| {i}{current} | {name} | {p.initiative} | {p.hp}/{p.max_hp} | {p.ac} | {p.position} |")

    current = encounter.current_participant
    if current:
        lines.append("")
        lines.append(f"**Current Turn:** {current.name}")

    terrain = encounter.terrain
    parts = [f"**Size:** {terrain.width}×{terrain.height}"]
    if terrain.obstacles:
        parts.append(f"**Obstacles:** {len(terrain.obstacles)}")
    if terrain.difficult_terrain:
        parts.append(f"**Difficult:** {len(terrain.difficult_terrain)}")
    if terrain.water:
        parts.append(f"**Water:** {len(terrain.water)}")
    lines.extend(["", "### Terrain", " | ".join(parts)])

    if terrain.hazards:
        lines.extend(["", "**Hazards:**"])
        lines.extend(f"- {h}" for h in terrain.hazards)

    lines.extend(["", "---", f"*Encounter ID: `{encounter.id}`*"])
    return "\n".join(lines)


def render_turn(advance: TurnAdvance, report: TickReport, death_save: bool) -> str:
    lines = []
    if advance.new_round:
        lines.extend([f"## 🔔 Round {advance.round}", ""])
    lines.append(f"## ▶️ {advance.current.name}'s Turn")
    lines.append("")
    lines.append(f"**Previous:** {advance.previous.name}")
    if advance.skipped:
        lines.append(f"**Skipped (down):** {', '.join(p.name for p in advance.skipped)}")
    if report.expired:
        lines.append(f"**Expired on {advance.previous.name}:** {', '.join(c.label for c in report.expired)}")
    if death_save:
        lines.append("")
        lines.append(f"💀 **{advance.current.name} is at 0 HP** - roll a death saving throw")
    return "\n".join(lines)


def render_stats(name: str, stats: EffectiveStats) -> str:
    lines = [f"## 📊 Effective Stats: {name}", ""]

    def stat_line(label, value):
        if value.modified:
            return f"**{label}:** {value.base} → {value.effective}"
        return f"**{label}:** {value.effective}"

    lines.append(stat_line("Max HP", stats.max_hp))
    lines.append(stat_line("Speed", stats.speed))
    if stats.ac is not None:
        lines.append(stat_line("AC", stats.ac))

    if stats.condition_effects:
        lines.extend(["", "### Condition Effects"])
        lines.extend(f"- {note}" for note in stats.condition_effects)
    if stats.is_dead:
        lines.extend(["", "☠️ **Dead**"])
    return "\n".join(lines)
