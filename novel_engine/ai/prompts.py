"""Prompt builders for each generation phase."""

from __future__ import annotations

import json

from novel_engine.jobs.models import ChapterSpec, NovelJob
from novel_engine.schema.genres import display_name

SUMMARY_SOURCE_CHARS = 3000

_HUMAN_LIKE_ANALYSIS = """7. HUMAN-LIKE ELEMENTS:
   - Internal character conflicts that create lasting tension
   - Opportunities for the protagonist to be genuinely wrong
   - Morally ambiguous situations requiring difficult choices
   - Distinctive character voice planning (speech patterns, vocabulary)"""

_STANDARD_ANALYSIS = """7. ENGAGING ELEMENTS:
   - Clear character motivations and goals
   - Compelling conflicts and obstacles
   - Genre-appropriate atmosphere and tone"""

_HUMAN_LIKE_OUTLINE = """OUTLINE REQUIREMENTS:
- Vary chapter types: action, dialogue-heavy, introspective, world-building
- Plan at least two meaningful character failures that do not resolve immediately
- Include one or two chapters whose endings complicate rather than clarify
- Let internal character conflicts span several chapters"""

_STANDARD_OUTLINE = """OUTLINE REQUIREMENTS:
- Create engaging chapter progression with clear story beats
- Build tension and character development throughout
- Maintain genre conventions and reader expectations"""


def _genre_label(job: NovelJob) -> str:
  return f"{display_name(job.request.genre)} - {display_name(job.request.subgenre)}"


def outline_lines(job: NovelJob) -> str:
  return "\n".join(f"Ch{spec.chapter_number}: {spec.title} - {spec.summary}" for spec in job.outline)


def render_analysis_prompt(job: NovelJob, guideline: str) -> str:
  request = job.request
  elements = _HUMAN_LIKE_ANALYSIS if request.human_like_writing else _STANDARD_ANALYSIS
  return f"""Analyze this novel premise and provide structural recommendations:

PREMISE: "{request.premise}"

GENRE: {display_name(request.genre)}
SUBGENRE: {display_name(request.subgenre)}
TARGET WORD COUNT: {request.target_word_count}
TARGET CHAPTERS: {request.target_chapters}

GENRE GUIDELINES:
{guideline}

ANALYSIS REQUIREMENTS:
1. Theme analysis
2. Character archetypes with internal contradictions and growth potential
3. Plot structure
4. Key story beats
5. Potential subplots
6. Tone and style guidance
{elements}

Respond in JSON format:
{{
  "themes": ["theme1", "theme2"],
  "characters": [{{"type": "character_type", "conflicts": "internal_struggles", "speechPattern": "distinctive_traits"}}],
  "plotStructure": "structure",
  "keyBeats": ["beat1", "beat2"],
  "subplots": [{{"main": "subplot", "resolution": "complete|partial|unresolved"}}],
  "tone": "tone description",
  "styleNotes": "guidance for prose"
}}"""


def render_outline_prompt(job: NovelJob) -> str:
  request = job.request
  per_chapter = round(request.target_word_count / request.target_chapters)
  analysis = job.analysis.model_dump(mode="json") if job.analysis else {}
  requirements = _HUMAN_LIKE_OUTLINE if request.human_like_writing else _STANDARD_OUTLINE
  return f"""Create a {request.target_chapters}-chapter outline for "{request.title}" ({_genre_label(job)}).

PREMISE: {request.premise}
WORD COUNT: {request.target_word_count} total (~{per_chapter} per chapter)

ANALYSIS: {json.dumps(analysis, indent=1)}

{requirements}

Create exactly {request.target_chapters} chapters.

JSON format:
{{
  "outline": [
    {{
      "chapterNumber": 1,
      "title": "Chapter Title",
      "summary": "Key events and plot progression",
      "keyEvents": ["event1", "event2", "event3"],
      "characterFocus": ["char1", "char2"],
      "plotAdvancement": "How this chapter advances the main plot",
      "wordTarget": {per_chapter},
      "genreElements": ["element1", "element2"]
    }}
  ]
}}"""


def render_synopsis_prompt(job: NovelJob) -> str:
  request = job.request
  return f"""Based on the premise and chapter outline, create a comprehensive synopsis for this novel:

PREMISE: {request.premise}
TITLE: {request.title}
GENRE: {_genre_label(job)}
TARGET LENGTH: {request.target_word_count} words, {request.target_chapters} chapters

CHAPTER OUTLINE:
{outline_lines(job)}

Write a detailed synopsis that captures the main story arc and central conflict, key character development, major turning points and how the story resolves.
This synopsis will be used to maintain consistency throughout the novel.

Synopsis:"""


def render_chapter_prompt(job: NovelJob, spec: ChapterSpec, *, story_memory: str, consistency_hint: str, guideline: str) -> str:
  request = job.request
  if request.human_like_writing:
    closing = f"Write approximately {spec.word_target} words. Let characters surprise themselves, let earlier consequences keep mattering and show traits through behavior rather than repeated description."
  else:
    closing = f"Write approximately {spec.word_target} words of engaging prose that maintains genre conventions and advances the story."
  return f"""Write Chapter {spec.chapter_number} of the novel "{request.title}".

CHAPTER OUTLINE:
Title: {spec.title}
Summary: {spec.summary}
Key Events: {", ".join(spec.key_events)}
Target Word Count: {spec.word_target}

STORY FOUNDATION:
Premise: "{request.premise}"
Genre: {_genre_label(job)}

COMPLETE CHAPTER OUTLINE:
{outline_lines(job)}

{story_memory}

{consistency_hint}

GENRE GUIDELINES:
{guideline}

{closing}

Write only the chapter content, no metadata or formatting."""


def render_summary_prompt(chapter_number: int, title: str, content: str) -> str:
  excerpt = content[:SUMMARY_SOURCE_CHARS]
  if len(content) > SUMMARY_SOURCE_CHARS:
    excerpt += "..."
  return f"""Summarize this chapter in 2-3 sentences, focusing on key plot developments, character actions and story elements that future chapters need to remember for consistency:

CHAPTER {chapter_number}: {title}

{excerpt}

Summary:"""
