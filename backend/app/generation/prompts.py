"""Prompt construction for per-chunk question generation."""

from backend.app.generation.chunker import Chunk
from backend.app.models.questions import Difficulty, Section

DIFFICULTY_GUIDELINES: dict[Difficulty, str] = {
    Difficulty.easy: (
        "- Focus on basic facts, definitions, and simple recall\n"
        "- Questions should be straightforward with one clearly correct answer\n"
        "- Minimal analysis or critical thinking required\n"
        '- Example: "What is the definition of X?" or "Which of these is a characteristic of Y?"\n'
        "- Wrong options should be plausible at a glance but clearly wrong to anyone who read the material"
    ),
    Difficulty.medium: (
        "- Require understanding and application of concepts\n"
        "- Some analysis and reasoning needed\n"
        "- May involve simple problem-solving or comparing concepts\n"
        '- Example: "How does X affect Y?" or "What is the relationship between A and B?"\n'
        "- Include one distractor that is subtly wrong and only eliminated by applying the concept"
    ),
    Difficulty.hard: (
        "- Complex scenarios requiring synthesis across several ideas\n"
        "- Critical thinking and evaluation of multiple factors\n"
        "- Edge cases, nuanced situations, and advanced applications\n"
        '- Example: "Given conditions X, Y, and Z, what is the most likely outcome?"\n'
        "- Every distractor must be plausible and drawn from common misconceptions about the material"
    ),
}

SYSTEM_INSTRUCTION = (
    "You are an expert quiz generator. You respond with a JSON array only: "
    "no markdown, no code blocks, no commentary."
)


def build_chunk_prompt(
    chunk: Chunk,
    desired_count: int,
    difficulty: Difficulty,
    section: Section,
) -> str:
    """Build the generation request for one chunk.

    Args:
        chunk: Content chunk to generate from
        desired_count: Number of questions to request
        difficulty: Difficulty of every question
        section: Position band of the chunk within the whole document

    Returns:
        Prompt text
    """
    level = difficulty.value.upper()
    return f"""Analyze the provided content thoroughly and generate exactly {desired_count} multiple-choice questions.

CONTEXT: This is part {chunk.index} of {chunk.total} of the source material ({section.value} of the document).

CRITICAL REQUIREMENTS:
1. **COVERAGE**: Spread the questions across this entire part, from its first paragraph to its last
2. **DIFFICULTY LEVEL**: ALL questions MUST be "{level}" difficulty
3. **NO REPETITION**: Each question covers a different idea
4. **VALIDATION**: Every question must be answerable from the provided content

DIFFICULTY GUIDELINES FOR "{level}":
{DIFFICULTY_GUIDELINES[difficulty]}

CONTENT:
{chunk.text}

RESPONSE FORMAT (JSON ONLY - NO MARKDOWN, NO CODE BLOCKS):
[
  {{
    "question": "Question text here?",
    "options": ["Option A", "Option B", "Option C", "Option D"],
    "correctAnswer": 0,
    "explanation": "Why the correct option is right, referring to the content",
    "topic": "Topic name",
    "difficulty": "{difficulty.value}",
    "section": "{section.value}"
  }}
]

MANDATORY RULES:
- Return ONLY the JSON array, no extra text
- Exactly {desired_count} questions, each with exactly 4 options and only ONE correct
- "correctAnswer" is the 0-based index of the correct option
- All questions {level} difficulty

Generate the {desired_count} {difficulty.value} questions now:"""
