"""
Signal detectors for incoming chat messages.

Each detector is an independent, pure function over normalised message text.
`extract_signals` runs all of them once so the solo and group policies of the
decision engine share the same outputs instead of re-deriving them.

Vocabulary is matched on word boundaries: "ty" must not fire inside
"property" and "ai" must not fire inside "said".
"""

from __future__ import annotations

import re
from collections.abc import Iterable

from assistant_core.models.domain.conversation_domain import (
    AcademicSignal,
    MessageSignals,
    QuestionSignal,
)


class TermMatcher:
    """Case-insensitive whole-word matcher over a fixed vocabulary."""

    def __init__(self, terms: Iterable[str], plurals: bool = False):
        self.terms = tuple(dict.fromkeys(t.lower() for t in terms))
        # Longest first so multi-word phrases win over their prefixes
        alternatives = "|".join(
            re.escape(term) for term in sorted(self.terms, key=len, reverse=True)
        )
        suffix = r"(?:s|es)?" if plurals else ""
        self._pattern = re.compile(rf"(?<!\w)(?:{alternatives}){suffix}(?!\w)")

    def search(self, text: str) -> str | None:
        match = self._pattern.search(text)
        return match.group(0) if match else None

    def matches(self, text: str) -> bool:
        return self._pattern.search(text) is not None

    def count(self, text: str) -> int:
        return len(self._pattern.findall(text))


def normalize(text: str | None) -> str:
    """Lower-case, straighten apostrophes and collapse whitespace."""
    if not text:
        return ""
    text = text.replace("’", "'").replace("‘", "'")
    return " ".join(text.lower().split())


# =================================================================
# VOCABULARY
# =================================================================

SUBJECT_TAXONOMY: dict[str, tuple[str, ...]] = {
    "mathematics": (
        "math", "maths", "mathematics", "calculus", "algebra", "linear algebra",
        "geometry", "trigonometry", "statistics", "probability", "derivative",
        "integral", "equation", "theorem", "matrix", "matrices", "vector",
        "polynomial", "logarithm", "chain rule", "product rule", "quotient rule",
        "power rule", "differential equation", "discrete math", "fraction",
    ),
    "programming": (
        "programming", "coding", "javascript", "typescript", "python", "java",
        "algorithm", "data structure", "recursion", "array", "database", "sql",
        "software", "compiler", "binary search", "big o", "async/await",
        "promise", "linked list", "hash table", "computer science",
    ),
    "physics": (
        "physics", "quantum", "quantum mechanics", "velocity", "acceleration",
        "momentum", "thermodynamics", "electromagnetism", "gravity", "newton",
        "circuit", "voltage", "kinematics", "relativity",
    ),
    "chemistry": (
        "chemistry", "organic chemistry", "biochemistry", "molecule", "atom",
        "chemical reaction", "catalyst", "periodic table", "stoichiometry",
        "covalent bond", "ionic bond", "oxidation",
    ),
    "biology": (
        "biology", "molecular biology", "photosynthesis", "cell", "dna", "rna",
        "evolution", "genetics", "ecosystem", "enzyme", "protein", "mitosis",
        "meiosis",
    ),
    "history": (
        "history", "historical", "world war", "world war ii", "revolution",
        "empire", "civilization", "ancient rome", "cold war",
    ),
    "literature": (
        "literature", "poem", "poetry", "novel", "shakespeare", "essay",
        "grammar", "metaphor", "literary",
    ),
    "economics": (
        "economics", "microeconomics", "macroeconomics", "inflation",
        "supply and demand", "gdp", "elasticity",
    ),
    "philosophy": ("philosophy", "ethics", "epistemology", "metaphysics"),
    "psychology": ("psychology", "cognitive", "neuroscience", "behaviorism"),
}

STUDY_TERMS = (
    "study", "studying", "learn", "learning", "understand", "homework",
    "assignment", "exam", "midterm", "final exam", "finals", "quiz", "test",
    "lecture", "course", "syllabus", "textbook", "chapter", "practice",
    "research", "project", "problem set", "exercise", "objectives", "semester",
    "revision", "tutorial", "coursework",
)

CONCEPT_TERMS = (
    "formula", "equation", "theorem", "principle", "law", "theory", "concept",
    "definition", "hypothesis", "experiment", "proof", "lemma", "axiom",
    "methodology", "framework", "function", "variable", "coefficient",
    "normalization", "operation", "method",
)

ACTION_TERMS = (
    "explain", "define", "describe", "analyze", "analyse", "calculate",
    "compute", "solve", "derive", "prove", "demonstrate", "determine",
    "evaluate", "interpret", "summarize", "summarise", "compare", "simplify",
    "factor", "integrate", "differentiate", "convert", "optimize",
)

ACADEMIC_PHRASES = (
    "step by step", "walk through", "walkthrough", "break down", "work out",
    "law of", "theory of", "principle of", "concept of", "definition of",
    "meaning of", "significance of", "process of", "procedure for",
)

PERSONAL_CASUAL_TERMS = (
    # family and relationships
    "dad", "mom", "father", "mother", "parents", "my family", "brother",
    "sister", "girlfriend", "boyfriend", "buddy", "bro", "sis",
    # feelings
    "feeling bad", "feel sad", "felt angry", "happy birthday", "stressed out",
    "tired of", "worried about", "anxious about",
    # chat shorthand
    "lol", "lmao", "haha", "hehe", "omg", "wtf", "btw", "fyi", "tbh", "imo",
    "ttyl", "brb", "gtg", "nvm", "jk", "thx", "ty", "np", "no problem",
    # greetings and farewells
    "hello there", "hi everyone", "hey guys", "sup", "goodbye", "bye bye",
    "see you", "see you later", "good night", "good morning", "good afternoon",
    "good evening", "take care", "stay safe", "have a good",
    # small talk
    "how are you", "how you doing", "how have you been", "whats up",
    "what's up", "how's it going", "how is it going", "talk to you later",
    "catch you later", "weekend", "vacation", "lunch", "dinner", "movie",
    "watching tv", "playing games", "hanging out", "chilling", "partying",
    "dating", "shopping", "working out", "cooking",
    "my friends", "my life", "my day", "i'm fine", "i am fine", "i'm good",
    "i am good", "i'm okay", "i am okay", "doing well", "doing good",
    "thanks everyone", "thank you everyone", "thanks all",
)

EDUCATIONAL_TERMS = (
    "learn", "study", "understand", "teach", "explain", "show", "demonstrate",
    "clarify", "illustrate", "elaborate", "what is", "what are", "how do",
    "how does", "why do", "why does", "when do", "where do", "which is",
    "who is", "solve", "calculate", "compute", "analyze", "evaluate",
    "determine", "find", "prove", "derive", "show that", "verify",
    "can you help", "need help", "help me", "i need to", "how to",
    "step by step", "walk through", "break down", "in detail", "math",
    "science", "history", "english", "physics", "chemistry", "biology",
    "programming", "coding", "algorithm",
)

QUESTION_STARTERS = (
    "what", "what's", "whats", "how", "how's", "why", "when", "where", "which",
    "who", "can you", "could you", "would you", "do you", "does", "do", "did",
    "is", "are", "will", "should", "must", "can", "could", "would", "might",
    "may", "shall", "am i",
)

HELP_VERBS = (
    "help", "assist", "support", "guide", "show", "teach", "explain",
    "clarify", "elaborate", "demonstrate",
)

PROBLEM_SOLVING_TERMS = (
    "solve", "calculate", "find", "determine", "compute", "evaluate",
    "analyze", "work out", "figure out",
)

UNCERTAINTY_PHRASES = (
    "i don't understand", "i do not understand", "i'm confused", "i am confused",
    "confused about", "i'm not sure", "i am not sure", "i can't figure out",
    "i cannot figure out", "i'm stuck", "i am stuck", "i need to know",
    "i wonder", "i'm wondering", "doesn't make sense", "does not make sense",
    "makes no sense",
)

MATH_QUESTION_PATTERNS = tuple(
    re.compile(p)
    for p in (
        r"what.*derivative",
        r"how.*solve",
        r"what.*integral",
        r"find.*value",
        r"calculate.*result",
        r"what.*equals?\b",
        r"what is .* equal to",
        r"solve.*equation",
    )
)

MATH_PATTERNS = tuple(
    re.compile(p)
    for p in (
        r"\d+\s*[+\-*/^=]\s*\d+",
        r"\b[a-z]\s*[+\-*/^=]\s*\d+",
        r"\b\d+[x-z]\b",
        r"\b(?:derivative|integral|limit)s?\b|d/dx|[∫∆∂]",
        r"\b(?:solve|equation|formula|calculate|compute)\b|\bfind\s+[x-z]\b",
        r"[√∑∏]",
        r"\b\d+\^\d+|\b\d+\*\*\d+",
        r"\b(?:area|volume|perimeter|circumference)\b.*\d+",
    )
)

CODE_PATTERNS = tuple(
    re.compile(p)
    for p in (
        r"\b[a-z_][\w.]*\([^)]*\)",
        r"\b(?:def|function|class)\s+\w+\s*[(:{]",
        r"\b(?:var|let|const)\s+\w+\s*=",
        r"\b(?:if|for|while|switch)\s*\(",
        r"^(?:from\s+[\w.]+\s+)?import\s+[\w.]+",
        r"\breturn\s+[^\s]+;",
        r"console\.log|#include\b|=>",
        r"</?[a-z][a-z0-9]*(?:\s[^>]*)?>",
        r"[{}]|;\s*$",
        r"\b(?:javascript|typescript|python|java|cpp|c\+\+|html|css|react|node(?:\.js)?|sql)(?!\w)",
        r"error.*line\s*\d+|syntax\s*error|undefined\s+variable|traceback|stack\s*trace",
    )
)

GREETING_ONLY = re.compile(
    r"^(?:hi|hello|hey|yo|ok|okay|k|thanks|thank you|thx|ty|bye|yes|no|yep|nope|"
    r"sure|cool|nice|great|lol|hmm+|wow)[\s.!?]*$"
)

ERROR_KEYWORDS = TermMatcher(
    ("error", "exception", "bug", "crash", "crashes", "traceback", "fails", "failing",
     "broken", "not working", "doesn't work", "isn't working"),
    plurals=True,
)

DEBUGGING_HINTS = TermMatcher(
    ("error", "bug", "not work", "doesn't work", "isn't working", "broken",
     "crash", "exception", "throwing", "fails"),
    plurals=True,
)

_MENTION_PATTERNS = tuple(
    re.compile(p)
    for p in (
        r"^@?ai\s*(?:[,:!?.]|$)",
        r"\b(?:hey|hi|hello|ok|okay|yo|thanks|thank you),?\s+@?ai\b",
        r"@(?:ai|assistant|bot|tutor)\b",
        r"\bai\s*[,:]",
        # verb forms only count when the message opens with the name
        r"^ai\s+(?:(?:can|could|would|will)\s+you|please|help|explain|tell|show|what|how|why)\b",
        r"\b(?:hey|hi|hello|ok|okay)\s+(?:assistant|bot|tutor)\b",
        r"^(?:assistant|bot|tutor)\b",
    )
)

_SUBJECT_MATCHERS = {
    subject: TermMatcher(terms, plurals=True) for subject, terms in SUBJECT_TAXONOMY.items()
}
_STUDY = TermMatcher(STUDY_TERMS, plurals=True)
_CONCEPT = TermMatcher(CONCEPT_TERMS, plurals=True)
_ACTION = TermMatcher(ACTION_TERMS)
_ACADEMIC_PHRASES = TermMatcher(ACADEMIC_PHRASES)
_PERSONAL = TermMatcher(PERSONAL_CASUAL_TERMS)
_EDUCATIONAL = TermMatcher(EDUCATIONAL_TERMS)
_PROBLEM_SOLVING = TermMatcher(PROBLEM_SOLVING_TERMS)
_UNCERTAINTY = TermMatcher(UNCERTAINTY_PHRASES)

_HELP_PHRASES = TermMatcher(
    [f"{verb} me" for verb in HELP_VERBS]
    + [f"{verb} with" for verb in HELP_VERBS]
    + [f"i need {verb}" for verb in HELP_VERBS]
    + [f"please {verb}" for verb in HELP_VERBS]
    + [f"someone {verb}" for verb in HELP_VERBS]
    + ["need help", "can you help", "please help"]
)


# =================================================================
# DETECTORS
# =================================================================


def is_trivial(text: str) -> bool:
    """Too short to act on, or a bare greeting/acknowledgement."""
    message = normalize(text)
    return len(message) < 2 or GREETING_ONLY.match(message) is not None


def detect_explicit_mention(text: str) -> bool:
    message = normalize(text)
    return any(pattern.search(message) for pattern in _MENTION_PATTERNS)


def _starts_with_question_word(message: str) -> bool:
    return any(
        message.startswith(starter + " ") or message.startswith(starter + "'")
        for starter in QUESTION_STARTERS
    )


def _classify_question(message: str, help_seeking: bool) -> str:
    if DEBUGGING_HINTS.matches(message):
        return "debugging"
    if re.match(r"^(?:what is|what are|what's|whats|define)\b", message) or (
        "meaning of" in message or re.search(r"\bwhat does .* mean\b", message)
    ):
        return "definition"
    if re.match(r"^how (?:do|can|should|would) (?:i|we|you)\b", message) or "how to" in message:
        return "how-to"
    if re.match(r"^(?:is|are|am i|does|do|can|should|will) ", message) and re.search(
        r"\b(?:correct|right|valid|ok|okay|accurate|true)\b", message
    ):
        return "validation"
    if re.search(r"\b(?:explain|why|clarify|elaborate|describe)\b", message):
        return "explanation"
    if help_seeking:
        return "help-request"
    return "general"


def detect_question(text: str) -> QuestionSignal:
    """Explicit interrogatives score higher than implicit help requests."""
    message = normalize(text)
    if not message:
        return QuestionSignal(is_question=False, question_type=None, confidence=0.0)

    starts_with_question = _starts_with_question_word(message)
    ends_with_question_mark = message.endswith("?")
    math_question = any(pattern.search(message) for pattern in MATH_QUESTION_PATTERNS)
    help_seeking = _HELP_PHRASES.matches(message)
    uncertainty = _UNCERTAINTY.matches(message)
    problem_solving = _PROBLEM_SOLVING.matches(message)

    explicit = starts_with_question or ends_with_question_mark or math_question
    implicit = help_seeking or uncertainty or problem_solving

    if not (explicit or implicit):
        return QuestionSignal(is_question=False, question_type=None, confidence=0.0)

    if starts_with_question and ends_with_question_mark:
        confidence = 0.9
    elif explicit:
        confidence = 0.8
    else:
        confidence = 0.6

    return QuestionSignal(
        is_question=True,
        question_type=_classify_question(message, help_seeking or uncertainty),
        confidence=confidence,
    )


def detect_subjects(text: str) -> list[str]:
    """All taxonomy subjects mentioned in the text, in taxonomy order."""
    message = normalize(text)
    return [subject for subject, matcher in _SUBJECT_MATCHERS.items() if matcher.matches(message)]


def detect_academic_intent(text: str) -> AcademicSignal:
    message = normalize(text)
    subjects = detect_subjects(message)

    indicators = []
    if subjects:
        indicators.append("subject")
    if _STUDY.matches(message):
        indicators.append("study")
    if _CONCEPT.matches(message):
        indicators.append("concept")
    if _ACTION.matches(message):
        indicators.append("action")
    if _ACADEMIC_PHRASES.matches(message):
        indicators.append("phrase")

    if not indicators:
        return AcademicSignal(is_academic=False, subject=None, indicators=(), confidence=0.0)

    return AcademicSignal(
        is_academic=True,
        subject=subjects[0] if subjects else "general",
        indicators=tuple(indicators),
        confidence=min(0.5 + 0.15 * len(indicators), 0.95),
    )


def detect_personal_casual(text: str) -> bool:
    return _PERSONAL.matches(normalize(text))


def detect_math_expression(text: str) -> bool:
    message = normalize(text)
    return any(pattern.search(message) for pattern in MATH_PATTERNS)


def detect_code_pattern(text: str) -> bool:
    message = normalize(text)
    return any(pattern.search(message) for pattern in CODE_PATTERNS)


def detect_educational_keywords(text: str) -> bool:
    return _EDUCATIONAL.matches(normalize(text))


def detect_error_keyword(text: str) -> bool:
    return ERROR_KEYWORDS.matches(normalize(text))


def extract_signals(text: str | None) -> MessageSignals:
    """Run every detector once over a message."""
    message = normalize(text)
    return MessageSignals(
        length=len(message),
        trivial=is_trivial(message),
        explicit_mention=detect_explicit_mention(message),
        question=detect_question(message),
        academic=detect_academic_intent(message),
        personal_casual=detect_personal_casual(message),
        math_expression=detect_math_expression(message),
        code_pattern=detect_code_pattern(message),
        educational_keywords=detect_educational_keywords(message),
        error_keyword=detect_error_keyword(message),
    )
