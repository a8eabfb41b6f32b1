"""Career and health chat assistants with a canned-reply fallback."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from flask import current_app

from utils.completion_client import get_completion_client
from utils.errors import DependencyError


@dataclass(frozen=True)
class CannedReply:
    keywords: tuple[str, ...]
    reply: str

    def matches(self, text: str) -> bool:
        return any(keyword in text for keyword in self.keywords)


@dataclass(frozen=True)
class ChatProfile:
    name: str
    system_prompt: str
    canned: tuple[CannedReply, ...]
    default_reply: str

    def canned_reply(self, message: str) -> str:
        text = (message or "").lower()
        for candidate in self.canned:
            if candidate.matches(text):
                return candidate.reply
        return self.default_reply


CAREER_PROFILE = ChatProfile(
    name="career",
    system_prompt=(
        "You are a helpful career advisor assistant for South African youth in the Eastern Cape.\n"
        "Your role is to provide guidance on:\n"
        "- Bursaries and scholarships\n"
        "- Career opportunities and job hunting\n"
        "- Learnerships and training programs\n"
        "- Business funding and entrepreneurship\n"
        "- CV writing and interview preparation\n"
        "- Education and skills development\n\n"
        "Be friendly, encouraging, and provide specific, actionable advice relevant to South African youth.\n"
        "Keep responses concise (2-3 paragraphs max) and include practical steps when possible."
    ),
    canned=(
        CannedReply(
            ("bursary", "scholarship"),
            "Great question about bursaries! Here are some tips:\n\n"
            "1. **NSFAS**: Apply for the National Student Financial Aid Scheme if you're from a household "
            "earning less than R350,000/year\n"
            "2. **Corporate Bursaries**: Companies like Sasol, Eskom, Anglo American offer bursaries\n"
            "3. **Start Early**: Most open applications July-August\n"
            "4. **Requirements**: Good academic record (60%+), financial need\n\n"
            "Check our Bursaries page regularly for new opportunities!",
        ),
        CannedReply(
            ("cv", "resume"),
            "CV Tips for South African Youth:\n\n"
            "- **Keep it concise**: 1-2 pages maximum\n"
            "- **Include**: Contact details, education, skills, work experience\n"
            "- **Highlight achievements**: Use numbers where possible\n"
            "- **Proofread**: No typos!\n"
            "- **Tailor it**: Customize for each application",
        ),
        CannedReply(
            ("interview",),
            "Interview Success Tips:\n\n"
            "**Preparation**:\n- Research the company\n- Practice common questions\n- Prepare your own questions\n\n"
            "**During Interview**:\n- Dress professionally\n- Arrive 10 minutes early\n"
            "- Make eye contact and smile\n- Use STAR method for examples\n\n"
            "**Follow-up**:\n- Send thank-you email within 24 hours\n\nGood luck!",
        ),
        CannedReply(
            ("learnership",),
            "Learnerships combine theory + practical work:\n\n"
            "**Benefits**:\n- Earn while you learn\n- Gain real work experience\n"
            "- Nationally recognized qualification\n- No student debt\n\n"
            "**How to find**: Check our Learnerships page!\n\n"
            "Popular fields: IT, Engineering, Finance, Healthcare",
        ),
        CannedReply(
            ("business", "funding"),
            "Business Funding Opportunities:\n\n"
            "**Government Support**:\n- SEDA (Small Enterprise Development)\n"
            "- NEF (National Empowerment Fund)\n- IDC (Industrial Development Corp)\n\n"
            "**Youth Programs**:\n- Youth Enterprise Development Fund\n- Awethu Project\n\n"
            "Check our Business Funding page!",
        ),
    ),
    default_reply=(
        "Hi! I'm your career assistant!\n\n"
        "I can help with:\n- Bursaries & Scholarships\n- Career opportunities\n- Learnerships\n"
        "- Business Funding\n- CV & Interview tips\n\nWhat would you like to know?"
    ),
)


MEDICAL_PROFILE = ChatProfile(
    name="medical",
    system_prompt=(
        "You are a helpful medical information assistant for South African youth in the Eastern Cape.\n"
        "Provide information about:\n"
        "- Mental health support and resources\n"
        "- HIV/TB information and services\n"
        "- Reproductive health and family planning\n"
        "- Clinic and hospital locations\n"
        "- Substance abuse support\n"
        "- Sexual health and STI information\n"
        "- Vaccinations and immunizations\n"
        "- Emergency contacts\n\n"
        "IMPORTANT:\n"
        "- Always remind users to consult healthcare professionals for diagnosis\n"
        "- Provide South African specific resources and hotlines\n"
        "- Be sensitive and non-judgmental\n"
        "- Include emergency numbers when relevant\n"
        "- Keep responses concise and practical\n"
        "- Never provide specific medical diagnoses\n\n"
        "Focus on directing youth to appropriate services and resources in South Africa."
    ),
    canned=(
        CannedReply(
            ("mental", "depression", "anxiety", "stress"),
            "Mental Health Support:\n\n"
            "- SADAG (South African Depression and Anxiety Group): 0800 567 567\n"
            "- Lifeline: 0861 322 322\n- FAMSA Eastern Cape: 043 743 5111\n"
            "- Free counselling at local clinics\n\n"
            "You can also visit youth-friendly clinics for confidential mental health support.",
        ),
        CannedReply(
            ("hiv", "aids", "tb", "tuberculosis"),
            "HIV & TB Services:\n\n"
            "- Free HIV testing at all public clinics\n- ARV treatment available at designated clinics\n"
            "- TB screening and treatment programs\n"
            "- Eastern Cape Department of Health Hotline: 0800 032 364\n\n"
            "Visit your nearest clinic for confidential testing and treatment. All services are free.",
        ),
        CannedReply(
            ("pregnancy", "contraception", "family planning", "pregnant"),
            "Reproductive Health Services:\n\n"
            "- Free contraceptives at all clinics\n- Antenatal care for pregnant women\n"
            "- Youth-friendly clinics with confidential services\n- Family planning counselling\n\n"
            "All public health facilities offer free reproductive health services for youth.",
        ),
        CannedReply(
            ("clinic", "hospital", "doctor"),
            "Healthcare Facilities:\n\n"
            "- Find your nearest clinic or hospital\n- Most services are free at public facilities\n"
            "- Bring your ID for registration\n- Emergency: 10177 or 082 911\n\n"
            "Youth-friendly services are available at designated clinics with trained staff for young people.",
        ),
        CannedReply(
            ("drug", "alcohol", "substance", "addiction"),
            "Substance Abuse Support:\n\n"
            "- SANCA Eastern Cape: 043 722 4456\n- Al-Anon/Alateen: 0861 435 722\n"
            "- Free rehabilitation programs available\n- Support groups in communities\n\n"
            "Confidential help is available. Reach out to start your recovery journey.",
        ),
        CannedReply(
            ("sti", "std", "sexual health"),
            "Sexual Health Information:\n\n"
            "- Free STI testing and treatment at clinics\n- Confidential services for youth\n"
            "- PrEP and PEP available for HIV prevention\n- Condoms distributed free at clinics\n\n"
            "Visit any public clinic for confidential testing and treatment.",
        ),
        CannedReply(
            ("vaccine", "vaccination", "immunization"),
            "Vaccination Services:\n\n"
            "- Free vaccinations at all clinics\n- COVID-19 vaccines available (12+ years)\n"
            "- Catch-up programs for missed childhood vaccines\n- HPV vaccine for girls and boys\n\n"
            "Bring your vaccination card to your nearest clinic.",
        ),
        CannedReply(
            ("emergency", "urgent", "crisis"),
            "Emergency Contacts:\n\n"
            "- Ambulance: 10177\n- Emergency: 082 911\n- Police: 10111\n"
            "- Rape Crisis: 021 447 9762\n- Suicide Crisis Line: 0800 567 567\n\n"
            "For life-threatening emergencies, call immediately or go to your nearest hospital.",
        ),
    ),
    default_reply=(
        "Welcome to Medical Info Chat!\n\n"
        "I can help with:\n\n- Mental health support\n- HIV & TB information\n- Reproductive health\n"
        "- Clinic & hospital info\n- Substance abuse help\n- Sexual health\n- Vaccinations\n"
        "- Emergency contacts\n\nWhat would you like to know about?"
    ),
)


def normalize_history(history: Optional[Sequence[Any]], limit: int) -> List[Dict[str, str]]:
    """Keep the most recent ``limit`` well-formed turns."""
    turns: List[Dict[str, str]] = []
    for item in history or []:
        if not isinstance(item, dict):
            continue
        role = item.get("role") if item.get("role") in ("user", "assistant") else "user"
        content = item.get("content") or item.get("message")
        if isinstance(content, str) and content.strip():
            turns.append({"role": role, "content": content.strip()})
    return turns[-limit:] if limit > 0 else []


def respond(profile: ChatProfile, message: str, history: Optional[Sequence[Any]] = None) -> Dict[str, Any]:
    """Return ``{"text", "fallback", "model"?}``; any dependency failure yields the canned reply."""
    client = get_completion_client()
    limit = int(current_app.config.get("CHAT_HISTORY_LIMIT", 10))
    messages = normalize_history(history, limit)
    messages.append({"role": "user", "content": message})

    try:
        text = client.complete(profile.system_prompt, messages, max_tokens=500, temperature=0.7)
    except DependencyError as exc:
        current_app.logger.info(
            "Chat falling back to canned reply",
            extra={"profile": profile.name, "reason": exc.message},
        )
        return {"text": profile.canned_reply(message), "fallback": True}
    return {"text": text, "fallback": False, "model": client.model}
