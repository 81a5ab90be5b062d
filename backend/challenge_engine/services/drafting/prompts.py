"""
PCN Challenge Engine - Drafting Prompts

Prompt construction for challenge letters. Everything the model needs is
embedded in a single prompt; the model is never asked to look anything up.
"""
from datetime import datetime
from typing import List, Optional

from ...models.ssot import TicketFacts, ChallengeStrategy, SenderDetails, ChallengeContext
from ..strategy.contravention_codes import describe


CHALLENGE_LETTER_INSTRUCTIONS = """You are a professional PCN challenge letter writer. Write a formal letter challenging a UK penalty charge notice.

Write the letter from the perspective of the vehicle owner, in the first person (I, my). The letter must be professional, polite but firm, and concise.

Rules:
- Use UK postal letter conventions
- Open with "Dear Sir or Madam"
- Close with "Yours faithfully" followed on the next line by the sender's full name
- Quote the PCN number and the vehicle registration where known
- Argue ONLY the grounds listed below, in the order given
- Do not admit that the contravention occurred
- Do not include any placeholders such as [Your Name] - use the actual values provided
- Use the exact sender and recipient details provided - never make up addresses
- Return the letter text only, with no commentary before or after it"""


def format_pennies(pennies: Optional[int]) -> Optional[str]:
    if pennies is None:
        return None
    return f"£{pennies // 100}.{pennies % 100:02d}"


def format_datetime(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    if value.hour == 0 and value.minute == 0:
        return value.strftime("%d %B %Y")
    return value.strftime("%d %B %Y at %H:%M")


def _fact_lines(facts: TicketFacts) -> List[str]:
    code = facts.contravention_code
    description = describe(code)
    rows = [
        ("PCN number", facts.pcn_number),
        ("Issuer", facts.issuer),
        ("Issuer type", facts.issuer_type.value if facts.issuer_type else None),
        ("Contravention code", f"{code} - {description}" if code and description else code),
        ("Location", facts.location),
        ("Date of contravention", format_datetime(facts.issued_at)),
        ("First observed", format_datetime(facts.first_seen_at)),
        ("Vehicle registration", facts.vehicle_registration),
        ("Amount due", format_pennies(facts.amount_due)),
        ("Discount deadline", format_datetime(facts.discount_deadline)),
        ("Notes on ticket", facts.notes),
    ]
    lines = [f"- {label}: {value}" for label, value in rows if value]
    for key, value in facts.unrecognized.items():
        lines.append(f"- {key}: {value}")
    return lines


def build_prompt(
    facts: TicketFacts,
    strategy: ChallengeStrategy,
    sender: SenderDetails,
    context: Optional[ChallengeContext] = None,
) -> str:
    """
    Build the single generation prompt for a challenge letter.

    Args:
        facts: TicketFacts (SSOT #1)
        strategy: ChallengeStrategy (SSOT #2) - grounds are argued in this order
        sender: Display details of the person sending the letter
        context: Optional free-text context from the user

    Returns:
        Prompt text
    """
    sections = [CHALLENGE_LETTER_INSTRUCTIONS, "", "TICKET DETAILS:"]
    sections.extend(_fact_lines(facts) or ["- (no structured details available)"])

    sections.extend(["", "GROUNDS FOR CHALLENGE (in order of priority):"])
    for index, selected in enumerate(strategy.grounds, start=1):
        label = selected.ground.value.replace("_", " ").capitalize()
        sections.append(f"{index}. {label}: {selected.rationale}")

    sections.extend(["", "SENDER:", f"- Name: {sender.full_name}"])
    for line in sender.address.lines():
        sections.append(f"- Address: {line}")
    if sender.vehicle_registration:
        sections.append(f"- Vehicle registration: {sender.vehicle_registration}")

    sections.extend(["", "RECIPIENT:", f"- {facts.issuer or 'The issuing authority'}"])

    if context is not None and context.user_context:
        sections.extend(["", "WHAT THE VEHICLE OWNER TOLD US:", context.user_context.strip()])

    if facts.source_text.strip():
        sections.extend(["", "ORIGINAL TICKET TEXT:", facts.source_text.strip()])

    return "\n".join(sections)
