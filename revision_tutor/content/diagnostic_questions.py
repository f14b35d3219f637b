"""
revIsion RSC v1.0 — Curriculum Diagnostic Questions

Questions that locate a student in the GCSE curriculum before revision starts.
NOT revision. NOT hints. Just clean diagnostic questions.

Rules:
- Each question tests one curriculum area
- Every question ends with "?"
- At most 3 are asked per session, one per difficulty band where available
"""

import random
from typing import Optional

FOUNDATION = "foundation"
CORE = "core"
HIGHER = "higher"
DIFFICULTY_BANDS = (FOUNDATION, CORE, HIGHER)

FALLBACK_QUESTION = "What would you like to focus on in this subject?"


def _q(qid: str, question: str, topic_area: str, difficulty: str) -> dict:
    return {"id": qid, "question": question, "topic_area": topic_area, "difficulty": difficulty}


DIAGNOSTIC_QUESTIONS: dict[str, list[dict]] = {
    # ─── Maths ───────────────────────────────────────────────────────────────
    "MATHS": [
        _q("m1", "What is 15% of 80?", "percentages", FOUNDATION),
        _q("m2", "What is x if 3x + 7 = 22?", "algebra", FOUNDATION),
        _q("m3", "What is the area of a triangle with base 6cm and height 4cm?", "geometry", FOUNDATION),
        _q("m4", "What is 3x² × 2x³ in its simplest form?", "algebra", CORE),
        _q("m5", "What is the gradient of the line y = 3x - 5?", "graphs", CORE),
        _q("m6", "How would you factorise x² + 5x + 6?", "algebra", CORE),
        _q("m7", "What is sin(30°)?", "trigonometry", HIGHER),
        _q("m8", "What are the solutions of x² - 5x + 6 = 0?", "quadratics", HIGHER),
        _q("m9", "What is the nth term of the sequence 3, 7, 11, 15...?", "sequences", CORE),
        _q("m10", "What is the probability of rolling a 6 on a fair dice twice in a row?", "probability", CORE),
    ],

    # ─── Biology ─────────────────────────────────────────────────────────────
    "BIOLOGY": [
        _q("b1", "What is the function of the mitochondria in a cell?", "cells", FOUNDATION),
        _q("b2", "What are the four chambers of the human heart?", "circulation", FOUNDATION),
        _q("b3", "What gas do plants absorb during photosynthesis?", "photosynthesis", FOUNDATION),
        _q("b4", "What is the role of enzymes in digestion?", "digestion", CORE),
        _q("b5", "What happens during mitosis?", "cell_division", CORE),
        _q("b6", "What is natural selection?", "evolution", CORE),
        _q("b7", "How do antibodies help fight disease?", "immunity", HIGHER),
        _q("b8", "What is the difference between aerobic and anaerobic respiration?", "respiration", CORE),
        _q("b9", "Which hormone controls blood sugar levels?", "hormones", CORE),
        _q("b10", "What are the products of photosynthesis?", "photosynthesis", FOUNDATION),
    ],

    # ─── Chemistry ───────────────────────────────────────────────────────────
    "CHEMISTRY": [
        _q("c1", "What are the three states of matter?", "states_of_matter", FOUNDATION),
        _q("c2", "What is the chemical formula for water?", "formulae", FOUNDATION),
        _q("c3", "What happens to atoms during a chemical reaction?", "reactions", FOUNDATION),
        _q("c4", "How would you balance the equation H₂ + O₂ → H₂O?", "equations", CORE),
        _q("c5", "What is an ionic bond?", "bonding", CORE),
        _q("c6", "What is the pH of a neutral solution?", "acids_bases", FOUNDATION),
        _q("c7", "What is electrolysis?", "electrolysis", HIGHER),
        _q("c8", "What are the products when an acid reacts with a metal carbonate?", "reactions", CORE),
        _q("c9", "What is the difference between an atom and an ion?", "atomic_structure", CORE),
        _q("c10", "How many electrons can the first shell of an atom hold?", "atomic_structure", FOUNDATION),
    ],

    # ─── Physics ─────────────────────────────────────────────────────────────
    "PHYSICS": [
        _q("p1", "What is the unit of force?", "forces", FOUNDATION),
        _q("p2", "What is the equation for speed?", "motion", FOUNDATION),
        _q("p3", "What is the difference between mass and weight?", "forces", FOUNDATION),
        _q("p4", "What is Ohm's Law?", "electricity", CORE),
        _q("p5", "What is the kinetic energy of a 2kg object moving at 3m/s?", "energy", CORE),
        _q("p6", "What is the frequency of a wave with wavelength 2m and speed 10m/s?", "waves", CORE),
        _q("p7", "What is nuclear fission?", "nuclear", HIGHER),
        _q("p8", "What does Newton's First Law of Motion state?", "forces", CORE),
        _q("p9", "What energy transformation occurs in a battery?", "energy", FOUNDATION),
        _q("p10", "What is the relationship between voltage, current and resistance?", "electricity", CORE),
    ],

    # ─── Combined Science ────────────────────────────────────────────────────
    "COMBINED_SCI": [
        _q("cs1", "What is the function of the nucleus in a cell?", "cells", FOUNDATION),
        _q("cs2", "What is the chemical formula for carbon dioxide?", "formulae", FOUNDATION),
        _q("cs3", "What is the unit of electrical current?", "electricity", FOUNDATION),
        _q("cs4", "What happens to particles when a substance is heated?", "particles", FOUNDATION),
        _q("cs5", "What is the process by which plants make glucose?", "photosynthesis", FOUNDATION),
        _q("cs6", "What is an exothermic reaction?", "energy_changes", CORE),
        _q("cs7", "What is the acceleration of an object that goes from 0 to 20m/s in 4 seconds?", "motion", CORE),
        _q("cs8", "What is the role of white blood cells?", "immunity", CORE),
        _q("cs9", "What is meant by conservation of energy?", "energy", CORE),
        _q("cs10", "How would you balance the equation Mg + HCl → MgCl₂ + H₂?", "equations", CORE),
    ],

    # ─── English Language ────────────────────────────────────────────────────
    "ENG_LANG": [
        _q("el1", "What is the difference between a simile and a metaphor?", "language_devices", FOUNDATION),
        _q("el2", "What does 'inference' mean when reading a text?", "reading_skills", FOUNDATION),
        _q("el3", "What is the purpose of a topic sentence in a paragraph?", "writing_structure", FOUNDATION),
        _q("el4", "How does a writer create tension in a narrative?", "creative_writing", CORE),
        _q("el5", "What is the effect of using short sentences in writing?", "language_effects", CORE),
        _q("el6", "What should you include in the introduction of an argumentative essay?", "transactional_writing", CORE),
        _q("el7", "What is 'pathetic fallacy'?", "language_devices", HIGHER),
        _q("el8", "How do you identify the writer's viewpoint in a non-fiction text?", "analysis", CORE),
        _q("el9", "What is the difference between explicit and implicit information?", "reading_skills", CORE),
        _q("el10", "Can you name three persuasive techniques?", "rhetoric", FOUNDATION),
    ],

    # ─── English Literature ──────────────────────────────────────────────────
    "ENG_LIT": [
        _q("elit1", "What is the difference between a theme and a motif?", "literary_terms", FOUNDATION),
        _q("elit2", "What is dramatic irony?", "literary_devices", FOUNDATION),
        _q("elit3", "What is the role of the chorus in a play?", "drama", CORE),
        _q("elit4", "How does context influence the meaning of a literary text?", "context", CORE),
        _q("elit5", "What is the difference between first person and third person narration?", "narrative_voice", FOUNDATION),
        _q("elit6", "What is iambic pentameter?", "poetry", HIGHER),
        _q("elit7", "How do you embed quotations in an essay?", "essay_skills", CORE),
        _q("elit8", "What is a soliloquy?", "drama", CORE),
        _q("elit9", "What does 'foreshadowing' mean?", "literary_devices", CORE),
        _q("elit10", "What is the structure of a sonnet?", "poetry", HIGHER),
    ],

    # ─── History ─────────────────────────────────────────────────────────────
    "HISTORY": [
        _q("h1", "What were the main causes of World War One?", "ww1", FOUNDATION),
        _q("h2", "What was the Treaty of Versailles?", "peace_treaties", FOUNDATION),
        _q("h3", "How did Hitler come to power in Germany?", "nazi_germany", CORE),
        _q("h4", "What was the Cold War?", "cold_war", FOUNDATION),
        _q("h5", "What is meant by 'primary source' evidence?", "source_skills", FOUNDATION),
        _q("h6", "Why did the Weimar Republic face challenges in the 1920s?", "weimar", CORE),
        _q("h7", "What was the policy of appeasement?", "causes_ww2", CORE),
        _q("h8", "How would you judge how useful a source is for studying history?", "source_skills", CORE),
        _q("h9", "What were the long-term consequences of World War One?", "consequences", HIGHER),
        _q("h10", "What was life like in Nazi Germany for young people?", "nazi_germany", CORE),
    ],

    # ─── Geography ───────────────────────────────────────────────────────────
    "GEOGRAPHY": [
        _q("g1", "What is the difference between weather and climate?", "climate", FOUNDATION),
        _q("g2", "What are the three types of plate boundaries?", "tectonics", FOUNDATION),
        _q("g3", "What is urbanisation?", "urban", FOUNDATION),
        _q("g4", "What are the main stages of the water cycle?", "water_cycle", FOUNDATION),
        _q("g5", "What causes earthquakes?", "tectonics", CORE),
        _q("g6", "What are the effects of deforestation?", "ecosystems", CORE),
        _q("g7", "How do you calculate population density?", "population", CORE),
        _q("g8", "What is a sustainable development goal?", "development", CORE),
        _q("g9", "How does a river change from source to mouth?", "rivers", CORE),
        _q("g10", "What is the greenhouse effect?", "climate_change", CORE),
    ],

    # ─── Computer Science ────────────────────────────────────────────────────
    "CS": [
        _q("comp1", "What is an algorithm?", "algorithms", FOUNDATION),
        _q("comp2", "What is the difference between RAM and ROM?", "hardware", FOUNDATION),
        _q("comp3", "What does CPU stand for and what does it do?", "hardware", FOUNDATION),
        _q("comp4", "What is a variable in programming?", "programming", FOUNDATION),
        _q("comp5", "What is the binary number 1010 in decimal?", "data_representation", CORE),
        _q("comp6", "What is the purpose of an IF statement?", "programming", FOUNDATION),
        _q("comp7", "What is SQL used for?", "databases", CORE),
        _q("comp8", "What is the difference between a LAN and a WAN?", "networks", CORE),
        _q("comp9", "What is malware?", "security", FOUNDATION),
        _q("comp10", "What is the purpose of a loop in programming?", "programming", CORE),
    ],
}

# Subjects not in the bank get a short self-assessment instead
DEFAULT_QUESTIONS = [
    _q("d1", "What topics in this subject do you feel most confident about?", "self_assessment", FOUNDATION),
    _q("d2", "What topics do you find most challenging?", "self_assessment", FOUNDATION),
    _q("d3", "When did you last revise this subject?", "self_assessment", FOUNDATION),
]


def has_diagnostic_questions(subject_code: Optional[str]) -> bool:
    return bool(subject_code) and subject_code.upper() in DIAGNOSTIC_QUESTIONS


def get_question_bank(subject_code: Optional[str]) -> list[dict]:
    if has_diagnostic_questions(subject_code):
        return DIAGNOSTIC_QUESTIONS[subject_code.upper()]
    return DEFAULT_QUESTIONS


def get_diagnostic_questions(
    subject_code: Optional[str],
    count: int = 3,
    seed: str = "",
) -> list[dict]:
    """
    Pick `count` questions covering curriculum breadth.

    One question per difficulty band where the bank has it, remaining slots
    filled from the rest. Seeded, so the same session always gets the same
    set in the same order.
    """
    questions = get_question_bank(subject_code)
    rng = random.Random(f"{subject_code or 'DEFAULT'}:{seed}")

    selected = []
    for band in DIFFICULTY_BANDS:
        in_band = [q for q in questions if q["difficulty"] == band]
        if in_band:
            selected.append(rng.choice(in_band))

    remaining = [q for q in questions if q not in selected]
    while len(selected) < count and remaining:
        pick = rng.choice(remaining)
        selected.append(pick)
        remaining.remove(pick)

    return selected[:count]


def get_next_diagnostic_question(
    subject_code: Optional[str],
    question_index: int,
    seed: str = "",
    count: int = 3,
) -> str:
    """Question number `question_index` (0-based) of this session's diagnostic."""
    questions = get_diagnostic_questions(subject_code, count=count, seed=seed)
    if 0 <= question_index < len(questions):
        return questions[question_index]["question"]
    return FALLBACK_QUESTION
