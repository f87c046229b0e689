from travel_rag_agent.app_config import RESPONSE_FORMATS

_PREAMBLE = """\
You're a helpful travel assistant. Use the context provided with each question \
when it is relevant, and the conversation so far to resolve follow-up questions."""

_JSON_FORMAT = """\
When recommending places, include the following in a JSON format:

In intro property, respond with the conversational tone first.
And then include all recommendations in places property.
End with a friendly offer to help further in outro property.

{
  "intro": "string",
  "places": [
    {
      "name": "string",
      "description": "string",
      "type": "e.g. Cultural, Nature, Food",
      "location": "approximate area in the city"
    }
  ],
  "outro": "string"
}"""

_MARKDOWN_FORMAT = """\
Respond in Markdown. Open with a short conversational paragraph, then list each \
recommended place as a bullet of the form:

- **Name** (type, e.g. Cultural, Nature, Food) - approximate area in the city: description

End with a friendly offer to help further."""


def build_system_prompt(response_format: str = "json") -> str:
    if response_format == "json":
        body = _JSON_FORMAT
    elif response_format == "markdown":
        body = _MARKDOWN_FORMAT
    else:
        raise ValueError(f"Unknown response format: {response_format!r}. Supported: {', '.join(RESPONSE_FORMATS)}")
    return f"{_PREAMBLE}\n\n{body}"
