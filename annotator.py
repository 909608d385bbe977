"""
Rule-based content annotations for headers, paragraphs and calls to action
"""
import re
from typing import List

from models import Annotation, PageSignals
from utils import clean_text

POWER_WORDS = [
    'amazing', 'exclusive', 'free', 'guaranteed', 'incredible', 'new', 'powerful',
    'proven', 'secret', 'ultimate', 'unique', 'essential', 'best', 'instant', 'easy'
]

PASSIVE_AUXILIARIES = [
    ' was ', ' were ', ' is ', ' are ', ' has been ', ' have been ',
    ' will be ', ' had been ', ' being '
]

PASSIVE_PARTICIPLES = [
    'made', 'done', 'created', 'written', 'provided', 'given', 'shown',
    'seen', 'found', 'produced', 'established', 'formed', 'sold', 'used'
]

TRANSITION_WORDS = [
    'additionally', 'consequently', 'furthermore', 'moreover', 'similarly',
    'likewise', 'in contrast', 'conversely', 'on the other hand', 'however',
    'nevertheless', 'nonetheless', 'therefore', 'thus', 'in conclusion',
    'finally', 'in summary', 'to summarize', 'for example', 'for instance',
    'specifically', 'in particular', 'notably', 'indeed'
]

ACTION_VERBS = [
    'get', 'download', 'subscribe', 'join', 'buy', 'order', 'register',
    'sign up', 'start', 'try', 'contact', 'discover', 'learn', 'find out',
    'explore', 'read', 'watch', 'view', 'see', 'check out'
]

URGENCY_WORDS = [
    'now', 'today', 'limited', 'exclusive', 'only', 'hurry', 'last chance',
    'closing soon', 'expires', 'ends', "don't miss", 'few left',
    'running out', 'soon', 'fast', 'instant', 'immediately', 'quick'
]

VALUE_WORDS = [
    'free', 'save', 'discount', 'offer', 'benefit', 'improve', 'boost',
    'increase', 'learn', 'discover'
]

CONCLUSION_MARKERS = [
    'in conclusion', 'to summarize', 'to sum up', 'finally', 'in summary',
    'overall', 'in the end', 'as a result', 'ultimately', 'in closing'
]

MAX_HEADER_LENGTH = 60
MAX_PARAGRAPH_WORDS = 150
MAX_SENTENCE_WORDS = 25
MAX_KEYWORD_DENSITY = 5.0
MAX_CTA_LENGTH = 50
MIN_CTA_LENGTH = 10


def _contains_any(text: str, phrases: List[str]) -> bool:
    lowered = text.lower()
    return any(phrase in lowered for phrase in phrases)


def _excerpt(text: str, length: int = 50) -> str:
    return text if len(text) <= length else text[:length] + "..."


def _count_keyword(text: str, keyword: str) -> int:
    return len(re.findall(re.escape(keyword.lower()), text.lower()))


def header_annotations(header: str, primary_keyword: str = "") -> List[Annotation]:
    """Keyword presence, length, power words and numbers in a heading"""
    annotations = []

    if primary_keyword and primary_keyword.lower() not in header.lower():
        annotations.append(Annotation(
            content=header,
            issue='Missing primary keyword',
            suggestion=f'Consider including your target keyword "{primary_keyword}" in this header',
            severity='high',
            type='semantics'
        ))

    if len(header) > MAX_HEADER_LENGTH:
        annotations.append(Annotation(
            content=header,
            issue='Header too long',
            suggestion=f'Keep headers under {MAX_HEADER_LENGTH} characters',
            severity='medium',
            type='structure'
        ))
    elif len(header) < 20 and len(header.split()) < 3:
        annotations.append(Annotation(
            content=header,
            issue='Header too short',
            suggestion='Make the header more descriptive and informative',
            severity='low',
            type='structure'
        ))

    if not _contains_any(header, POWER_WORDS):
        annotations.append(Annotation(
            content=header,
            issue='Lacks emotional appeal',
            suggestion='Add trigger words such as "proven" or "essential" to make the header more compelling',
            severity='low',
            type='engagement'
        ))

    if not re.search(r'\d', header):
        annotations.append(Annotation(
            content=header,
            issue='No numbers in header',
            suggestion='Numbered headers ("7 ways to...") tend to improve click-through rates',
            severity='low',
            type='engagement'
        ))

    return annotations


def _passive_example(paragraph: str) -> str:
    for auxiliary in PASSIVE_AUXILIARIES:
        position = paragraph.find(auxiliary)
        if position >= 0:
            start = paragraph.rfind('.', 0, position) + 1
            end = paragraph.find('.', position + 1)
            return paragraph[start:end + 1 if end > 0 else len(paragraph)].strip()
    return _excerpt(paragraph)


def paragraph_annotations(paragraph: str, primary_keyword: str = "") -> List[Annotation]:
    """Length, passive voice, sentence length, transitions and keyword usage in a paragraph"""
    annotations = []
    words = paragraph.split()
    word_count = len(words)

    if word_count > MAX_PARAGRAPH_WORDS:
        annotations.append(Annotation(
            content=_excerpt(paragraph),
            issue='Paragraph too long',
            suggestion='Break this paragraph into chunks of 2-4 sentences',
            severity='medium',
            type='structure'
        ))

    has_auxiliary = any(auxiliary in paragraph for auxiliary in PASSIVE_AUXILIARIES)
    has_participle = any(f" {word} " in paragraph for word in PASSIVE_PARTICIPLES)
    if has_auxiliary and has_participle:
        annotations.append(Annotation(
            content=_passive_example(paragraph),
            issue='Passive voice detected',
            suggestion='Rewrite in active voice for more direct content',
            severity='medium',
            type='readability'
        ))

    sentences = [s for s in re.split(r'[.!?]+', paragraph) if s.strip()]
    long_sentences = [s for s in sentences if len(s.split()) > MAX_SENTENCE_WORDS]
    if long_sentences:
        annotations.append(Annotation(
            content=_excerpt(long_sentences[0].strip(), 60),
            issue='Long sentences detected',
            suggestion='Aim for 15-20 words per sentence',
            severity='medium',
            type='readability'
        ))

    if len(paragraph) > 80 and not _contains_any(paragraph, TRANSITION_WORDS):
        annotations.append(Annotation(
            content=_excerpt(paragraph),
            issue='Lacks transition words',
            suggestion='Add transitions such as "however" or "for example" to improve flow',
            severity='low',
            type='readability'
        ))

    if primary_keyword and word_count:
        appearances = _count_keyword(paragraph, primary_keyword)
        if appearances / word_count * 100 > MAX_KEYWORD_DENSITY:
            annotations.append(Annotation(
                content=_excerpt(paragraph),
                issue='Keyword stuffing',
                suggestion=f'Reduce usage of "{primary_keyword}"; aim for natural inclusion',
                severity='high',
                type='semantics'
            ))
        elif len(paragraph) > 100 and appearances == 0:
            annotations.append(Annotation(
                content=_excerpt(paragraph),
                issue='Missing target keyword',
                suggestion=f'Try to naturally include "{primary_keyword}" in this paragraph',
                severity='medium',
                type='semantics'
            ))

    return annotations


def cta_annotations(cta: str) -> List[Annotation]:
    """Action verb, urgency, length and value proposition of a call to action"""
    annotations = []

    if not _contains_any(cta, ACTION_VERBS):
        annotations.append(Annotation(
            content=cta,
            issue='Missing action verb',
            suggestion='Start with a clear action verb such as "Get", "Download" or "Subscribe"',
            severity='high',
            type='engagement'
        ))

    if not _contains_any(cta, URGENCY_WORDS):
        annotations.append(Annotation(
            content=cta,
            issue='No sense of urgency',
            suggestion='Add urgency such as "today" or "now" to encourage immediate action',
            severity='medium',
            type='engagement'
        ))

    if len(cta) > MAX_CTA_LENGTH:
        annotations.append(Annotation(
            content=cta,
            issue='CTA too long',
            suggestion=f'Keep CTA text under {MAX_CTA_LENGTH} characters',
            severity='medium',
            type='structure'
        ))
    elif len(cta) < MIN_CTA_LENGTH:
        annotations.append(Annotation(
            content=cta,
            issue='CTA too short',
            suggestion='Describe the value users will receive',
            severity='low',
            type='structure'
        ))

    if not _contains_any(cta, VALUE_WORDS):
        annotations.append(Annotation(
            content=cta,
            issue='Missing value proposition',
            suggestion='State the benefit of clicking, e.g. "Get the free guide"',
            severity='medium',
            type='engagement'
        ))

    return annotations


def introduction_annotations(paragraphs: List[str], title: str, primary_keyword: str = "") -> List[Annotation]:
    if not paragraphs:
        return [Annotation(
            content='Missing introduction',
            issue='No introduction content found',
            suggestion='Add an engaging introduction that includes your primary keyword',
            severity='high',
            type='structure'
        )]

    intro = "\n\n".join(paragraphs[:2])
    annotations = []

    if primary_keyword and primary_keyword.lower() not in intro.lower():
        annotations.append(Annotation(
            content=_excerpt(intro),
            issue='Introduction missing primary keyword',
            suggestion=f'Include "{primary_keyword}" early in the introduction',
            severity='high',
            type='semantics'
        ))

    if title and title.lower()[:15] not in intro.lower():
        annotations.append(Annotation(
            content=_excerpt(intro),
            issue='Introduction not aligned with title',
            suggestion='Make the introduction address the topic promised by the title',
            severity='medium',
            type='structure'
        ))

    has_hook = '?' in intro or '"' in intro or re.search(r'\d+%|\d+\s+out of', intro)
    if not has_hook:
        annotations.append(Annotation(
            content=_excerpt(intro),
            issue='Missing engaging hook',
            suggestion='Open with a question, statistic or quote',
            severity='medium',
            type='engagement'
        ))

    word_count = len(intro.split())
    if word_count < 30:
        annotations.append(Annotation(
            content=_excerpt(intro),
            issue='Introduction too short',
            suggestion='Expand the introduction to 40-60 words',
            severity='medium',
            type='structure'
        ))
    elif word_count > 150:
        annotations.append(Annotation(
            content=_excerpt(intro),
            issue='Introduction too long',
            suggestion='Keep the introduction to about 60-120 words',
            severity='low',
            type='structure'
        ))

    return annotations


def conclusion_annotations(paragraphs: List[str]) -> List[Annotation]:
    if len(paragraphs) <= 1:
        return [Annotation(
            content='Missing conclusion',
            issue='No conclusion content found',
            suggestion='Add a conclusion that summarizes key points and ends with a call to action',
            severity='high',
            type='structure'
        )]

    conclusion = "\n\n".join(paragraphs[-2:])
    if _contains_any(conclusion, CONCLUSION_MARKERS):
        return []
    return [Annotation(
        content=_excerpt(conclusion),
        issue='Weak conclusion signal',
        suggestion='Signal the wrap-up with phrases such as "in summary" and restate the key takeaway',
        severity='low',
        type='structure'
    )]


def generate_annotations(signals: PageSignals, primary_keyword: str = "") -> List[Annotation]:
    """All annotations for a page, in document section order"""
    paragraphs = [clean_text(p) for p in signals.paragraphs]
    paragraphs = [p for p in paragraphs if p]

    annotations = introduction_annotations(paragraphs, signals.title, primary_keyword)
    for header in signals.h1 + signals.h2:
        annotations.extend(header_annotations(header, primary_keyword))
    for paragraph in paragraphs:
        annotations.extend(paragraph_annotations(paragraph, primary_keyword))
    for cta in signals.cta_texts:
        annotations.extend(cta_annotations(cta))
    annotations.extend(conclusion_annotations(paragraphs))

    return annotations
