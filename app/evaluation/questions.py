"""Static question lists for every analysis type and mode.

Comprehensive lists are the full evaluation protocol; quick lists are five
headline metrics per type.
"""

from app.evaluation.types import AnalysisMode, AnalysisType

INTELLIGENCE_QUESTIONS = [
    "IS IT INSIGHTFUL?",
    "DOES IT DEVELOP POINTS? (OR, IF IT IS A SHORT EXCERPT, IS THERE EVIDENCE THAT IT WOULD DEVELOP POINTS IF EXTENDED)?",
    "IS THE ORGANIZATION MERELY SEQUENTIAL (JUST ONE POINT AFTER ANOTHER, LITTLE OR NO LOGICAL SCAFFOLDING)? OR ARE THE IDEAS ARRANGED, NOT JUST SEQUENTIALLY BUT HIERARCHICALLY?",
    "IF THE POINTS IT MAKES ARE NOT INSIGHTFUL, DOES IT OPERATE SKILLFULLY WITH CANONS OF LOGIC/REASONING.",
    'ARE THE POINTS CLICHES? OR ARE THEY "FRESH"?',
    "DOES IT USE TECHNICAL JARGON TO OBFUSCATE OR TO RENDER MORE PRECISE?",
    "IS IT ORGANIC? DO POINTS DEVELOP IN AN ORGANIC, NATURAL WAY? DO THEY 'UNFOLD'? OR ARE THEY FORCED AND ARTIFICIAL?",
    "DOES IT OPEN UP NEW DOMAINS? OR, ON THE CONTRARY, DOES IT SHUT OFF INQUIRY (BY CONDITIONALIZING FURTHER DISCUSSION OF THE MATTERS ON ACCEPTANCE OF ITS INTERNAL AND POSSIBLY VERY FAULTY LOGIC)?",
    "IS IT ACTUALLY INTELLIGENT OR JUST THE WORK OF SOMEBODY WHO, JUDGING BY THE SUBJECT-MATTER, IS PRESUMED TO BE INTELLIGENT (BUT MAY NOT BE)?",
    "IS IT REAL OR IS IT PHONY?",
    "DO THE SENTENCES EXHIBIT COMPLEX AND COHERENT INTERNAL LOGIC?",
    "IS THE PASSAGE GOVERNED BY A STRONG CONCEPT? OR IS THE ONLY ORGANIZATION DRIVEN PURELY BY EXPOSITORY (AS OPPOSED TO EPISTEMIC) NORMS?",
    "IS THERE SYSTEM-LEVEL CONTROL OVER IDEAS? IN OTHER WORDS, DOES THE AUTHOR SEEM TO RECALL WHAT HE SAID EARLIER AND TO BE IN A POSITION TO INTEGRATE IT INTO POINTS HE HAS MADE SINCE THEN?",
    "ARE THE POINTS 'REAL'? ARE THEY FRESH? OR IS SOME INSTITUTION OR SOME ACCEPTED VEIN OF PROPAGANDA OR ORTHODOXY JUST USING THE AUTHOR AS A MOUTH PIECE?",
    "IS THE WRITING EVASIVE OR DIRECT?",
    "ARE THE STATEMENTS AMBIGUOUS?",
    "DOES THE PROGRESSION OF THE TEXT DEVELOP ACCORDING TO WHO SAID WHAT OR ACCORDING TO WHAT ENTAILS OR CONFIRMS WHAT?",
    "DOES THE AUTHOR USE OTHER AUTHORS TO DEVELOP HIS IDEAS OR TO CLOAK HIS OWN LACK OF IDEAS?",
]

ORIGINALITY_QUESTIONS = [
    "IS IT ORIGINAL (NOT IN THE SENSE THAT IT HAS ALREADY BEEN SAID BUT IN THE SENSE THAT ONLY A FECUND MIND COULD COME UP WITH IT)?",
    "ARE THE WAYS THE IDEAS ARE INTERCONNECTED ORIGINAL? OR ARE THOSE INTERCONNECTIONS CONVENTION-DRIVEN AND DOCTRINAIRE?",
    "ARE IDEAS DEVELOPED IN A FRESH AND ORIGINAL WAY? OR IS THE IDEA-DEVELOPMENT MERELY ASSOCIATIVE, COMMONSENSE-BASED (OR COMMON-NONSENSE-BASED), OR DOCTRINAIRE?",
    "IS IT ORIGINAL RELATIVE TO THE DATASET THAT, JUDGING BY WHAT IT SAYS AND HOW IT SAYS IT, IT APPEARS TO BE ADDRESSING?",
    "IS IT ORIGINAL IN A SUBSTANTIVE SENSE (IN THE SENSE IN WHICH BACH WAS ORIGINAL) OR ONLY IN A FRIVOLOUS TOKEN SENSE (THE SENSE IN WHICH SOMEBODY WHO RANDOMLY BANGS ON A PIANO IS 'ORIGINAL')?",
    "IS IT BOILERPLATE (OR IF IT, PER SE, IS NOT BOILER PLATE, IS IT THE RESULT OF APPLYING BOILER PLATE PROTOCOLS IN A BOILER PLATE WAY TO SOME DATASET)?",
    "WOULD SOMEBODY WHO HAD NOT READ IT, BUT WAS OTHERWISE EDUCATED AND INFORMED, COME AWAY FROM IT BEING MORE ENLIGHTENED AND BETTER EQUIPPED TO ADJUDICATE INTELLECTUAL QUESTIONS? OR, ON THE CONTRARY, WOULD HE COME UP CONFUSED WITH NOTHING TANGIBLE TO SHOW FOR IT?",
    "WOULD SOMEBODY READING IT COME AWAY FROM THE EXPERIENCE WITH INSIGHTS THAT WOULD OTHERWISE BE HARD TO ACQUIRE THAT HOLD UP IN GENERAL?",
    "OR WOULD WHATEVER HIS TAKEAWAY WAS HAVE VALIDITY ONLY RELATIVE TO VALIDITIES THAT ARE SPECIFIC TO SOME AUTHOR OR SYSTEM AND PROBABLY DO NOT HAVE MUCH OBJECTIVE LEGITIMACY?",
]

COGENCY_QUESTIONS = [
    "IS THE POINT BEING DEFENDED (IF THERE IS ONE) SHARP ENOUGH THAT IT DOES NOT NEED ARGUMENTATION?",
    "DOES THE REASONING DEFEND THE POINT BEING ARGUED IN THE RIGHT WAYS?",
    "DOES THE REASONING ONLY DEFEND THE ARGUED FOR POINT AGAINST STRAWMEN?",
    "DOES THE REASONING DEVELOP THE POINT PER SE? IE DOES THE REASONING SHOW THAT THE POINT ITSELF IS STRONG? OR DOES IT 'DEFEND' IT ONLY BY SHOWING THAT VARIOUS AUTHORITIES DO OR WOULD APPROVE OF IT?",
    "IS THE POINT SHARP? IF NOT, IS IT SHARPLY DEFENDED?",
    "IS THE REASONING GOOD ONLY IN A TRIVIAL 'DEBATING' SENSE? OR IS IT GOOD IN THE SENSE THAT IT WOULD LIKELY MAKE AN INTELLIGENT PERSON RECONSIDER HIS POSITION?",
    "IS THE REASONING INVOLVED IN DEFENDING THE KEY CLAIM ABOUT ACTUALLY ESTABLISHING THAT CLAIM? OR IS IT MORE ABOUT OBFUSCATING?",
    "DOES THE REASONING HELP ILLUMINATE THE MERITS OF THE CLAIM? OR DOES IT JUST SHOW THAT THE CLAIM IS ON THE RIGHT SIDE OF SOME (FALSE OR TRIVIAL) PRESUMPTION?",
    "IS THE 'REASONING' IN FACT REASONING? OR IS IT JUST A SERIES OF LATER STATEMENTS THAT CONNECT ONLY SUPERFICIALLY (E.G. BY REFERENCING THE SAME KEY TERMS OR AUTHORS) TO THE ORIGINAL?",
    "IF COGENT, IS IT COGENT IN THE SENSE THAT A PERSON OF INTELLIGENCE WHO PREVIOUSLY THOUGHT OTHERWISE WOULD NOW TAKE IT MORE SERIOUSLY? OR IS IT COGENT ONLY IN THE SENSE THAT IT DOES IN FACT PROVIDE AN ARGUMENT AND TOUCH ALL THE RIGHT (MIDDLE-SCHOOL COMPOSITION CLASS) BASES? IN OTHER WORDS, IS THE ARGUMENTATION TOKEN AND PRO FORMA OR DOES IT ACTUALLY SERVE THE FUNCTION OF SHOWING THE IDEA TO HAVE MERIT?",
    "DOES THE 'ARGUMENTATION' SHOW THAT THE IDEA MAY WELL BE CORRECT? OR DOES IT RATHER SHOW THAT IT HAS TO BE 'ACCEPTED' (IN THE SENSE THAT ONE WILL BE ON THE WRONG SIDE OF SOME PANEL OF 'EXPERTS' IF ONE THINKS OTHERWISE)?",
    "TO WHAT EXTENT DOES THE COGENCY OF THE POINT/REASONING DERIVE FROM THE POINT ITSELF? AND TO WHAT EXTENT IS IT SUPERIMPOSED ON IT BY TORTURED ARGUMENTATION?",
]

OVERALL_QUALITY_QUESTIONS = [
    "IS IT INSIGHTFUL?",
    "IS IT TRUE?",
    "IS IT IMPORTANT?",
    "IS IT WELL-WRITTEN?",
    "IS IT CLEAR?",
    "IS IT ACCURATE?",
    "IS IT THOROUGH?",
    "IS IT BALANCED?",
    "IS IT ORIGINAL?",
    "IS IT COGENT?",
    "IS IT COHERENT?",
    "IS IT COMPELLING?",
    "IS IT SUBSTANTIVE?",
    "OVERALL QUALITY?",
]

# Quick mode: five headline metrics per type
QUICK_INTELLIGENCE_QUESTIONS = [
    "Compression (density of meaning per word)",
    "Abstraction (ability to move beyond surface detail)",
    "Inference depth (multi-step reasoning)",
    "Integration of disparate domains",
    "Meta-cognitive awareness",
]

QUICK_ORIGINALITY_QUESTIONS = [
    "Conceptual novelty",
    "Semantic distance from existing ideas",
    "Transformational synthesis",
    "Counterintuitive insights",
    "Fresh angle development",
]

QUICK_COGENCY_QUESTIONS = [
    "Logical validity",
    "Strength of evidence/reasons",
    "Explicit structure (clear argument shape)",
    "Handling counterexamples",
    "Avoiding overgeneralization",
]

QUICK_QUALITY_QUESTIONS = [
    "Clarity of expression",
    "Precision of language",
    "Coherence of structure",
    "Depth of insight",
    "Overall intellectual merit",
]

_QUESTION_SETS: dict[tuple[AnalysisType, AnalysisMode], list[str]] = {
    (AnalysisType.INTELLIGENCE, AnalysisMode.COMPREHENSIVE): INTELLIGENCE_QUESTIONS,
    (AnalysisType.ORIGINALITY, AnalysisMode.COMPREHENSIVE): ORIGINALITY_QUESTIONS,
    (AnalysisType.COGENCY, AnalysisMode.COMPREHENSIVE): COGENCY_QUESTIONS,
    (AnalysisType.QUALITY, AnalysisMode.COMPREHENSIVE): OVERALL_QUALITY_QUESTIONS,
    (AnalysisType.INTELLIGENCE, AnalysisMode.QUICK): QUICK_INTELLIGENCE_QUESTIONS,
    (AnalysisType.ORIGINALITY, AnalysisMode.QUICK): QUICK_ORIGINALITY_QUESTIONS,
    (AnalysisType.COGENCY, AnalysisMode.QUICK): QUICK_COGENCY_QUESTIONS,
    (AnalysisType.QUALITY, AnalysisMode.QUICK): QUICK_QUALITY_QUESTIONS,
}


def get_questions(
    analysis_type: AnalysisType,
    mode: AnalysisMode = AnalysisMode.COMPREHENSIVE,
) -> list[str]:
    """Return a copy of the question list for a type and mode."""
    return list(_QUESTION_SETS[(AnalysisType(analysis_type), AnalysisMode(mode))])
