"""
Rulebook - Prompt Templates & Retrieval Constants
===================================================
Centralised prompt text and fixed user-facing messages for the RAG
engine.  All prompts live here so they can be reviewed and versioned
independently of application logic.

Exports
-------
ANSWER_PROMPT_TEMPLATE, NO_ANSWER_SENTINEL, APOLOGY_MESSAGE,
CONTEXT_DELIMITER, SOURCE_SEPARATOR, POLICY_KEYWORDS, WELCOME_MESSAGE.
"""

# ══════════════════════════════════════════════════════════════════════
#  DELIMITERS
# ══════════════════════════════════════════════════════════════════════

# Between context passages inside the prompt.
CONTEXT_DELIMITER: str = "\n\n---\n\n"

# Between multiple raw source texts joined for a single ingestion run.
SOURCE_SEPARATOR: str = "\n\n---\n\n"


# ══════════════════════════════════════════════════════════════════════
#  FIXED RESPONSES
# ══════════════════════════════════════════════════════════════════════

NO_ANSWER_SENTINEL: str = "I don't know based on the provided document."

APOLOGY_MESSAGE: str = "Sorry, I couldn't find an answer to that in the Student Resource Book. Please try rephrasing your question or asking about a more specific policy."

WELCOME_MESSAGE: str = "Hello! I'm your Student Resource Book assistant. I can help you find information about college policies, academic programs, student services, campus facilities, and much more. What would you like to know?"


# ══════════════════════════════════════════════════════════════════════
#  RANKING HEURISTICS
# ══════════════════════════════════════════════════════════════════════
# Lowercase stems matched as substrings.  Passages mentioning them tend
# to carry the concrete rules students ask about.

POLICY_KEYWORDS: tuple[str, ...] = ("attend", "examin", "eligib")


# ══════════════════════════════════════════════════════════════════════
#  ANSWER PROMPT
# ══════════════════════════════════════════════════════════════════════

ANSWER_PROMPT_TEMPLATE: str = '''You are a helpful assistant. Answer ONLY using the provided excerpts from the Student Resource Book. If there is truly no relevant information in the excerpts, reply exactly: "{sentinel}" Otherwise, give a concise, clear answer. Be decisive if the excerpts contain relevant rules.

Rules (plain text, no markdown tables):
- First line: state the exact numeric requirement(s) if present (e.g., "Eligible with ≥80% attendance per course").
- Then up to 4 bullets (start with "- ") covering: counting period, relaxations/allowances, documentation deadlines, consequences of shortfall.
- Prefer concrete rules, numbers, limits, and eligibility criteria.
- Total length <= 120 words.
- No introductions, no disclaimers, no references to "document" or "context".
- Paraphrase; do not quote large passages.

Question:
"""{question}"""

Excerpts:
"""
{context}
"""

Answer:'''
