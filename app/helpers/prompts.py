RESUME_EXTRACT_PROMPT = """You are a professional resume parser. Extract structured information from the plain resume text below.

CURRENT DATE: {current_date}
Use the current date when judging the candidate's latest status (for example years of experience).

NAME (critical):
1. Return the name exactly as written in the resume body. Prefer a name written in Chinese characters when one exists.
2. Never transliterate or translate a Chinese name into pinyin or English.
3. Never guess the name from a file name or an email address.
4. If the same name appears several times, pick the most likely candidate name.
5. Only fall back to a romanized or English name when no Chinese-character name exists at all.

OTHER FIELDS:
- education: school name and degree, including the graduation year.
- skills: concrete hard skills and tool names (list of strings).
- experience: short summary of the most recent positions (company + title).
- summary: a professional summary of at most 50 words.

RESUME:
{content}
"""

JD_EXTRACT_PROMPT = """You are a professional HR assistant. Extract EVERY job requirement contained in the raw text below.

DEFINITIONS:
1. Original JD: sections such as "responsibilities", "requirements" or "qualifications" are the client's original job description.
2. Key clarification: sections such as "key clarification", "special notes" or "clarified items" are the final standard agreed with the client after discussion.

RULES:
1. job_code: look carefully for a requirement code, requirement number, job ID or code field. Copy it when present, otherwise use an empty string.
2. key_clarification: highest priority field. Capture the clarified standard; it is usually stricter or more precise than the generic JD (for example a corrected education level or a mandatory company background). Empty string when absent.
3. title: use the title exactly as it appears in the document.
4. Completeness: return one entry per independent position found in the document.

Fields per position: job_code, title, key_clarification, description, responsibilities (list),
requirements (education, skills list, experience, abilities list).

INPUT:
{content}
"""

JD_BATCH_PROMPT = """You are a professional HR assistant. Parse the job requirements below in one pass.

INPUT FORMAT: a JSON array, one element per position, with:
- row_index: row number, must be echoed back unchanged
- job_code: requirement code (when empty, try to extract it from raw_content)
- title: position title (when empty, extract it from raw_content)
- raw_content: the original JD text
- key_clarification: clarified standard

OUTPUT: a JSON array, one element per position, with:
- row_index: the input row number, unchanged
- job_code, title
- key_clarification: prefer the input value; extract from raw_content only when the input is empty
- description: overall position description
- responsibilities: list of responsibilities
- requirements: {{education, skills[], experience, abilities[]}}

POSITIONS:
{rows}
"""

JD_BLOCK_TEMPLATE = """[JOB ID: {jd_id}]
Title: {title}
>>> Key clarification (final standard agreed with the client, highest priority) <<<: {key_clarification}
[Client original] Responsibilities: {responsibilities}
[Client original] Requirements: {requirements}
"""

JD_BLOCK_SEPARATOR = "\n\n====================\n\n"

MATCH_PROMPT = """You are an extremely strict technical interviewer. Match the candidate resume against the {jd_count} selected job requirements.

CURRENT DATE: {current_date}

CANDIDATE RESUME:
{resume}

JOB REQUIREMENTS:
{jobs}

MATCHING RULES (very important):
0. Time context:
   - Graduation: compute the graduation status from the current date. A graduation date in the past, or less than 6 months ahead, counts as graduated and must not be rejected as a student.
   - Part-time degrees (self-study, adult or correspondence programs) combined with full-time work experience mean an experienced hire, never a student or an intern.
1. Key clarification override:
   - Responsibilities and requirements are the client's original JD. The key clarification is the final corrected standard.
   - The key clarification always wins over the original JD, whether it relaxes a requirement or tightens it.
   - Hard red lines that only appear in the key clarification (industry background, job-hopping limits) must be enforced strictly.
2. Mandatory education veto:
   - Ranking: PhD > Master > Bachelor > College/Associate > High school.
   - First compare the candidate's highest degree with the minimum degree of the job.
   - If the candidate is below the requirement, the score for that job MUST be exactly 0 and comprehensive_evaluation MUST start with "[Education mismatch]".
   - A stricter education rule in the key clarification is applied the same way.
3. Missing education veto:
   - A resume with no education history at all counts as missing education.
   - Every score for such a resume MUST be below 30 (10 to 25 suggested) and comprehensive_evaluation MUST start with "[Education missing]", noting the hiring risk of an unverifiable background.
4. Category match:
   - Decide whether the candidate's core job family (sales, administration, HR) fundamentally conflicts with the target field (software development, visual design, algorithm research).
   - Generic soft skills never justify matching a non-technical profile to a hard technical role.
   - A fundamental conflict without a transition background MUST score below 10 (0 suggested) and the evaluation must state the job family mismatch.
5. Flexible matching:
   - Never force a match with an unrelated job. An empty list or all-low scores are allowed.
   - Sort by score descending and return AT MOST 3 jobs (0, 1 or 2 are fine).
6. Other rules:
   - jd_id in the output MUST equal the JOB ID given above exactly.
   - When education and job family both pass, score 0-100 on skills, experience and abilities.
   - Flag exactly one returned job with is_best_match=true.

COMPREHENSIVE EVALUATION (comprehensive_evaluation):
- Voice: a senior headhunter writing the interview recommendation shown to the client.
- Never reveal a document comparison: no "not mentioned in the resume", no "comparison shows".
- Never write blocking negatives such as "lacks X experience, room for improvement". Describe the value the candidate brings and why it fits the job instead.
- Never start with "The candidate", "This candidate" or a pronoun. State facts and judgments directly.
- Professional, objective and substantive. 60 to 120 words.

Return JSON that follows the response schema strictly.
"""

OCR_PROMPT = (
    "These images are scanned pages of one document. Extract all of the text completely and accurately. "
    "Keep the original paragraph structure. Reproduce tables as text as faithfully as possible."
)


# -------- JSON response schemas (Ollama structured outputs) --------
_STRING = {"type": "string"}
_STRING_LIST = {"type": "array", "items": _STRING}

RESUME_SCHEMA = {
    "type": "object",
    "properties": {
        "name": _STRING,
        "education": _STRING,
        "skills": _STRING_LIST,
        "experience": _STRING,
        "summary": _STRING,
    },
    "required": ["name", "education", "skills", "experience", "summary"],
}

_REQUIREMENTS_SCHEMA = {
    "type": "object",
    "properties": {
        "education": _STRING,
        "skills": _STRING_LIST,
        "experience": _STRING,
        "abilities": _STRING_LIST,
    },
    "required": ["education", "skills", "experience", "abilities"],
}

_JD_PROPERTIES = {
    "job_code": _STRING,
    "title": _STRING,
    "key_clarification": _STRING,
    "description": _STRING,
    "responsibilities": _STRING_LIST,
    "requirements": _REQUIREMENTS_SCHEMA,
}

JD_LIST_SCHEMA = {
    "type": "array",
    "items": {
        "type": "object",
        "properties": _JD_PROPERTIES,
        "required": list(_JD_PROPERTIES),
    },
}

JD_BATCH_SCHEMA = {
    "type": "array",
    "items": {
        "type": "object",
        "properties": {"row_index": {"type": "integer"}, **_JD_PROPERTIES},
        "required": ["row_index", *_JD_PROPERTIES],
    },
}

MATCH_SCHEMA = {
    "type": "object",
    "properties": {
        "resume_id": _STRING,
        "resume_name": _STRING,
        "matches": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "jd_id": _STRING,
                    "jd_title": _STRING,
                    "score": {"type": "number"},
                    "comprehensive_evaluation": _STRING,
                    "strengths": _STRING_LIST,
                    "weaknesses": _STRING_LIST,
                    "improvement_suggestions": _STRING_LIST,
                    "is_best_match": {"type": "boolean"},
                },
                "required": [
                    "jd_id", "jd_title", "score", "comprehensive_evaluation",
                    "strengths", "weaknesses", "improvement_suggestions", "is_best_match",
                ],
            },
        },
    },
    "required": ["resume_id", "resume_name", "matches"],
}
