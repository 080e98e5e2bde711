"""System prompt for the CuratedAscents Expedition Architect."""

from __future__ import annotations

from datetime import UTC, date, datetime

from expedition_chat.language import language_name
from expedition_chat.memory import ClientProfile, ConversationMemory
from expedition_chat.tools.fallback_rates import FALLBACK_SYSTEM_PROMPT

SYSTEM_PROMPT_TEMPLATE = """You are the Expedition Architect for CuratedAscents, a luxury adventure travel company specializing in Nepal, Tibet, Bhutan, and India.

## Current Date
Today is **{current_date}** ({current_day_of_week}). Use it to resolve relative dates like "next spring" or "in October".

## Your Role
You help clients plan extraordinary journeys by:
- Understanding their travel preferences and requirements
- Searching our database for hotels, transportation, guides, packages, and services
- Providing accurate pricing from our supplier rates
- Creating customized itineraries

## Important Rules

### Pricing Rules (CRITICAL):
1. Tool results never contain cost or margin data; it is removed before you see it.
2. Present all prices as the final package price. Do NOT invent or guess cost or margin figures.
3. For groups of 20+ people (MICE), mention that group discounts are available and suggest contacting the sales team for a tailored quote.
4. Never use phrases like "our cost is" or "we mark up by". You don't have that data and must not fabricate it.
5. NEVER show per-service or per-item price breakdowns. Only present the **total package price** and **per-person price**. List the included services by name without individual prices.

### When Searching:
1. Always search the database FIRST for any rate inquiries
2. Use the search_rates tool for hotels, transportation, guides, flights, helicopters, packages
3. Use the search_hotels tool to find properties by location or category
4. If asked about specific prices, always query the database

### Communication Style:
- Be warm, professional, and knowledgeable
- Share your expertise about destinations
- Ask clarifying questions when needed (group size, dates, preferences)
- Suggest complementary services (guides, transportation, activities)
- Reply in the language the client writes in

### Quote Building:
- When building quotes, use the calculate_quote tool
- Always confirm number of travelers and nights
- Mention what's included and excluded
- Offer to prepare a detailed proposal

### Safety:
- For high-altitude treks, check the itinerary with validate_trek_acclimatization
- For restricted regions (Tibet, Mustang, Dolpo, Manaslu, Bhutan), check lead times with validate_permits
{fallback_prompt}
## Destinations You Specialize In:
- **Nepal**: Kathmandu, Pokhara, Everest Region, Annapurna Region, Chitwan, Lumbini
- **Tibet**: Lhasa, Shigatse, Everest North, Mount Kailash
- **Bhutan**: Paro, Thimphu, Punakha, Bumthang
- **India**: Darjeeling, Sikkim, Ladakh, Varanasi

Remember: You're not just booking travel, you're crafting life-changing adventures!"""

WHATSAPP_PROMPT_ADDITIONS = """

## WhatsApp Communication Guidelines:
- Keep responses concise and mobile-friendly
- Use bullet points for lists
- Break long responses into digestible paragraphs
- Avoid excessive formatting - WhatsApp has limited markdown
- If sharing links, put them on their own line
- Offer to send detailed quotes via email when appropriate"""

LANGUAGE_REPLY_TEMPLATE = """

## LANGUAGE
The client writes in {language}. Reply in {language} unless they ask for another language. Keep tool arguments, destination names and prices in English."""

OCCASION_WINDOW_MONTHS = 3


def get_base_system_prompt(now: datetime | None = None) -> str:
    """Base prompt with today's date and the fallback-rate rules injected."""
    now = now or datetime.now(UTC)
    return SYSTEM_PROMPT_TEMPLATE.format(
        current_date=now.strftime("%d %B %Y"),
        current_day_of_week=now.strftime("%A"),
        fallback_prompt=FALLBACK_SYSTEM_PROMPT,
    )


def _months_until(occasion_date: str, today: date) -> int | None:
    try:
        when = date.fromisoformat(occasion_date[:10])
    except ValueError:
        return None
    return (when.year - today.year) * 12 + (when.month - today.month)


def build_personalized_system_prompt(
    base_prompt: str,
    client_profile: ClientProfile | None = None,
    memory: ConversationMemory | None = None,
    today: date | None = None,
) -> str:
    """Append CLIENT CONTEXT and CONVERSATION CONTEXT sections to *base_prompt*.

    Sections are only added for information that is present, so a brand-new
    anonymous visitor gets *base_prompt* back unchanged.
    """
    prompt = base_prompt
    today = today or date.today()

    if client_profile is not None:
        prefs = client_profile.preferences
        prompt += (
            "\n\n## CLIENT CONTEXT\n"
            f"You are speaking with {client_profile.name or 'a returning client'}."
        )
        if prefs.travel_style:
            prompt += f"\n- Travel Style: {prefs.travel_style}"
        if prefs.interests:
            prompt += f"\n- Interests: {', '.join(prefs.interests)}"
        if prefs.communication_style:
            prompt += f"\n- Communication Preference: {prefs.communication_style}"
        if prefs.dietary_restrictions:
            prompt += f"\n- Dietary Restrictions: {', '.join(prefs.dietary_restrictions)}"
        if prefs.accessibility_needs:
            prompt += f"\n- Accessibility Needs: {', '.join(prefs.accessibility_needs)}"

        upcoming = []
        for occasion in prefs.special_occasions:
            months = _months_until(occasion.date, today)
            if months is not None and 0 <= months <= OCCASION_WINDOW_MONTHS:
                upcoming.append(f"{occasion.type} on {occasion.date}")
        if upcoming:
            prompt += f"\n- Upcoming Special Occasions: {', '.join(upcoming)}"

        if client_profile.past_trips:
            trips = ", ".join(f"{t.destination} ({t.date})" for t in client_profile.past_trips)
            prompt += f"\n- Past Trips: {trips}"
        if client_profile.active_quotes:
            quotes = ", ".join(f"{q.name} - {q.status}" for q in client_profile.active_quotes)
            prompt += f"\n- Active Quotes: {quotes}"

        score = client_profile.lead_score
        if score is not None:
            if score.status in ("ready_to_book", "qualified"):
                prompt += (
                    "\n\n**Note: This client shows high purchase intent. "
                    "Be direct about next steps and booking.**"
                )
            if score.detected_budget:
                prompt += f"\n- Detected Budget Interest: around {score.detected_budget}"
            if score.detected_group_size:
                prompt += f"\n- Group Size: {score.detected_group_size} travelers"

    if memory is not None:
        ctx = memory.extracted_context
        prompt += "\n\n## CONVERSATION CONTEXT (from previous messages)"
        if ctx.mentioned_destinations:
            prompt += f"\n- Destinations mentioned: {', '.join(ctx.mentioned_destinations)}"
        if ctx.mentioned_dates:
            prompt += f"\n- Dates discussed: {', '.join(ctx.mentioned_dates)}"
        if ctx.mentioned_budget:
            prompt += f"\n- Budget mentioned: {ctx.mentioned_budget}"
        if ctx.travelers_count:
            prompt += f"\n- Number of travelers: {ctx.travelers_count}"
        if ctx.interests:
            prompt += f"\n- Interests expressed: {', '.join(ctx.interests)}"

    return prompt


def assemble_system_prompt(
    base_prompt: str,
    channel: str = "web",
    client_profile: ClientProfile | None = None,
    memory: ConversationMemory | None = None,
    today: date | None = None,
    reply_language: str | None = None,
) -> str:
    """Base prompt, then the WhatsApp rules for that channel, then personalisation.

    A LANGUAGE section closes the prompt when the reply should not be in
    English.  *reply_language* (detected from the current message) wins over
    the profile's stored preference.
    """
    prompt = base_prompt
    if channel == "whatsapp":
        prompt += WHATSAPP_PROMPT_ADDITIONS
    if client_profile is not None or memory is not None:
        prompt = build_personalized_system_prompt(prompt, client_profile, memory, today=today)

    language = reply_language
    if language is None and client_profile is not None:
        language = client_profile.preferences.preferred_language
    if language and language != "en":
        prompt += LANGUAGE_REPLY_TEMPLATE.format(language=language_name(language))
    return prompt
