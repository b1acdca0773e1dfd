"""
Guide Phrases Module
====================
Everything the guide says without asking Gemini:
- Supported languages (code, English name, native name)
- Quick-start suggestion labels per language
- Canned replies (trip plan, language confirmation, failure notices)
- Sustainability tips and the "Today's Briefing" prompt
- Art styles offered for image generation

Tables are keyed by BCP-47 language code. Lookups fall back to en-US.
"""

from typing import Dict, List, NamedTuple, Optional


class Language(NamedTuple):
    code: str
    name: str
    native_name: str


DEFAULT_LANGUAGE = "en-US"

LANGUAGES: List[Language] = [
    Language("en-US", "English", "English"),
    Language("hi-IN", "Hindi", "हिन्दी"),
    Language("kn-IN", "Kannada", "ಕನ್ನಡ"),
    Language("ta-IN", "Tamil", "தமிழ்"),
    Language("te-IN", "Telugu", "తెలుగు"),
    Language("ml-IN", "Malayalam", "മലയാളം"),
]

ART_STYLES: List[str] = [
    "Photorealistic",
    "Watercolor",
    "Oil Painting",
    "Anime",
    "Pixel Art",
    "Pencil Sketch",
    "3D Render",
    "Pop Art",
]

DEFAULT_SESSION_TITLE = "New Chat"


# =============================================================================
# SYSTEM PROMPTS
# =============================================================================

SYSTEM_PROMPT = """You are the Gokarna Guide, a warm and knowledgeable travel assistant for
Gokarna, Karnataka, India.

You help travellers with:
- Beaches (Om Beach, Kudle, Half Moon, Paradise, Gokarna Main Beach) and how to reach them
- Temples, especially the Mahabaleshwar Temple, with timings and dress customs
- Places to stay for every budget, local food and cafes
- Getting around: buses, autos, trekking routes between beaches
- Weather, tides, sunsets and seasonal advice

Keep answers practical and friendly. Use short paragraphs or bullet points.
Use **bold** for place names. When you rely on web or map results, say so.
Encourage responsible, low-impact travel."""

LIVE_SYSTEM_PROMPT = (
    "You are a helpful travel assistant for Gokarna. "
    "Keep your answers concise and friendly."
)


def build_system_instruction(language_code: str) -> str:
    """System instruction for a chat handle in the session's language."""
    return (
        f"{SYSTEM_PROMPT}\n The user's preferred language is {language_code}. "
        "Please respond primarily in this language unless the user switches."
    )


# =============================================================================
# QUICK-START SUGGESTIONS
# =============================================================================
# Order matters: index 5 is the "Trip Plan" shortcut label in every language.

TODAYS_BRIEFING_PROMPT: Dict[str, str] = {
    "en-US": "Give me today's briefing for Gokarna: the weather, tide timings, sunset time and any local events happening today.",
    "hi-IN": "गोकर्ण के लिए आज की ब्रीफिंग दें: मौसम, ज्वार का समय, सूर्यास्त का समय और आज के स्थानीय कार्यक्रम।",
    "kn-IN": "ಗೋಕರ್ಣಕ್ಕಾಗಿ ಇಂದಿನ ಬ್ರೀಫಿಂಗ್ ನೀಡಿ: ಹವಾಮಾನ, ಅಲೆಗಳ ಸಮಯ, ಸೂರ್ಯಾಸ್ತದ ಸಮಯ ಮತ್ತು ಇಂದಿನ ಸ್ಥಳೀಯ ಕಾರ್ಯಕ್ರಮಗಳು.",
    "ta-IN": "கோகர்ணாவுக்கான இன்றைய அறிக்கையை வழங்கவும்: வானிலை, அலை நேரங்கள், சூரிய அஸ்தமன நேரம் மற்றும் இன்றைய உள்ளூர் நிகழ்வுகள்.",
    "te-IN": "గోకర్ణ కోసం నేటి బ్రీఫింగ్ ఇవ్వండి: వాతావరణం, అలల సమయాలు, సూర్యాస్తమయ సమయం మరియు నేటి స్థానిక కార్యక్రమాలు.",
    "ml-IN": "ഗോകർണ്ണത്തിനായുള്ള ഇന്നത്തെ ബ്രീഫിംഗ് നൽകുക: കാലാവസ്ഥ, വേലിയേറ്റ സമയം, സൂര്യാസ്തമയ സമയം, ഇന്നത്തെ പ്രാദേശിക പരിപാടികൾ.",
}

# (label, icon) pairs; the briefing chip carries a prompt override
_SUGGESTION_LABELS: Dict[str, List[str]] = {
    "en-US": ["Today's Briefing", "Explore Beaches", "Find Hotels", "Local Food", "Temple Visits", "Trip Plan"],
    "hi-IN": ["आज की ब्रीफिंग", "समुद्र तट", "होटल खोजें", "स्थानीय भोजन", "मंदिर दर्शन", "यात्रा योजना"],
    "kn-IN": ["ಇಂದಿನ ಬ್ರೀಫಿಂಗ್", "ಕಡಲತೀರಗಳು", "ಹೋಟೆಲ್‌ಗಳು", "ಸ್ಥಳೀಯ ಆಹಾರ", "ದೇವಾಲಯ ಭೇಟಿಗಳು", "ಪ್ರವಾಸ ಯೋಜನೆ"],
    "ta-IN": ["இன்றைய அறிக்கை", "கடற்கரைகள்", "ஹோட்டல்கள்", "உள்ளூர் உணவு", "கோவில் வருகைகள்", "பயணத் திட்டம்"],
    "te-IN": ["నేటి బ్రీఫింగ్", "బీచ్‌లు", "హోటళ్ళు", "స్థానిక ఆహారం", "ఆలయ సందర్శనలు", "ట్రిప్ ప్లాన్"],
    "ml-IN": ["ഇന്നത്തെ ബ്രീഫിംഗ്", "ബീച്ചുകൾ", "ഹോട്ടലുകൾ", "പ്രാദേശിക ഭക്ഷണം", "ക്ഷേത്ര സന്ദർശനം", "യാത്രാ പദ്ധതി"],
}

_SUGGESTION_ICONS = ["sun-cloud", "beach", "hotel", "food", "temple", "trip-plan"]

TRIP_PLAN_INDEX = 5


def initial_suggestions(language_code: str) -> List[Dict[str, Optional[str]]]:
    """Quick-start chips for a fresh session, as plain dicts."""
    code = language_code if language_code in _SUGGESTION_LABELS else DEFAULT_LANGUAGE
    chips = []
    for i, label in enumerate(_SUGGESTION_LABELS[code]):
        chips.append({
            "text": label,
            "icon": _SUGGESTION_ICONS[i],
            "prompt": TODAYS_BRIEFING_PROMPT[code] if i == 0 else None,
        })
    return chips


def trip_plan_labels() -> List[str]:
    """The lowercased "Trip Plan" label of every supported language."""
    return [_SUGGESTION_LABELS[lang.code][TRIP_PLAN_INDEX].lower() for lang in LANGUAGES]


# =============================================================================
# CANNED REPLIES
# =============================================================================

_SEPARATOR = "━━━━━━━━━━━━━━━━━━"

TRIP_PLAN_PROMPT: Dict[str, str] = {
    "en-US": f"""🌴 **Your 3-Day Gokarna Trip Plan**
{_SEPARATOR}
🕉️ **Day 1: Temple town**
• Morning darshan at the **Mahabaleshwar Temple** (dress modestly)
• Walk the car street and the **Koti Teertha** tank
• 🌅 Sunset on **Gokarna Main Beach**
{_SEPARATOR}
🏖️ **Day 2: Beach trek**
• 📍 Start at **Kudle Beach**, trek over the headland to **Om Beach**
• Continue to **Half Moon** and **Paradise Beach** (carry water)
• 🚗 Boat back from Paradise to Om Beach in the afternoon
{_SEPARATOR}
🧭 **Day 3: Slow day**
• Breakfast at a cliff-top cafe above Kudle
• Optional trip to **Mirjan Fort** (about 25 km)
• 🕓 Catch the evening bus or train from Gokarna Road
{_SEPARATOR}
⚠️ Swim only at flagged spots; currents are strong during the monsoon.
🎯 Ask me about stays, food or transport for any of these days!""",
    "hi-IN": f"""🌴 **गोकर्ण की 3 दिन की यात्रा योजना**
{_SEPARATOR}
🕉️ **दिन 1:** **महाबलेश्वर मंदिर** के दर्शन, कोटि तीर्थ, और 🌅 मुख्य समुद्र तट पर सूर्यास्त।
🏖️ **दिन 2:** **कुडले बीच** से **ओम बीच**, **हाफ मून** और **पैराडाइज़ बीच** तक ट्रेक।
🧭 **दिन 3:** आरामदायक नाश्ता, **मिर्जान किला** की सैर, और शाम को वापसी।
{_SEPARATOR}
⚠️ केवल झंडे वाले स्थानों पर ही तैरें।""",
    "kn-IN": f"""🌴 **ಗೋಕರ್ಣ 3 ದಿನಗಳ ಪ್ರವಾಸ ಯೋಜನೆ**
{_SEPARATOR}
🕉️ **ದಿನ 1:** **ಮಹಾಬಲೇಶ್ವರ ದೇವಾಲಯ** ದರ್ಶನ, ಕೋಟಿ ತೀರ್ಥ, 🌅 ಮುಖ್ಯ ಕಡಲತೀರದಲ್ಲಿ ಸೂರ್ಯಾಸ್ತ.
🏖️ **ದಿನ 2:** **ಕುಡ್ಲೆ ಬೀಚ್**‌ನಿಂದ **ಓಂ ಬೀಚ್**, **ಹಾಫ್ ಮೂನ್** ಮತ್ತು **ಪ್ಯಾರಡೈಸ್ ಬೀಚ್** ವರೆಗೆ ಚಾರಣ.
🧭 **ದಿನ 3:** ನಿಧಾನವಾದ ಬೆಳಗು, **ಮಿರ್ಜಾನ್ ಕೋಟೆ** ಭೇಟಿ, ಸಂಜೆ ಹಿಂತಿರುಗುವಿಕೆ.
{_SEPARATOR}
⚠️ ಧ್ವಜ ಹಾಕಿದ ಸ್ಥಳಗಳಲ್ಲಿ ಮಾತ್ರ ಈಜಿರಿ.""",
    "ta-IN": f"""🌴 **கோகர்ணா 3 நாள் பயணத் திட்டம்**
{_SEPARATOR}
🕉️ **நாள் 1:** **மகாபலேஸ்வர் கோவில்** தரிசனம், கோடி தீர்த்தம், 🌅 முக்கிய கடற்கரையில் சூரிய அஸ்தமனம்.
🏖️ **நாள் 2:** **குட்லே கடற்கரை** முதல் **ஓம் கடற்கரை**, **ஹாஃப் மூன்** மற்றும் **பாரடைஸ் கடற்கரை** வரை மலையேற்றம்.
🧭 **நாள் 3:** நிதானமான காலை, **மிர்ஜான் கோட்டை** பயணம், மாலையில் திரும்புதல்.
{_SEPARATOR}
⚠️ கொடியிடப்பட்ட இடங்களில் மட்டுமே நீந்தவும்.""",
    "te-IN": f"""🌴 **గోకర్ణ 3 రోజుల ట్రిప్ ప్లాన్**
{_SEPARATOR}
🕉️ **రోజు 1:** **మహాబలేశ్వర ఆలయం** దర్శనం, కోటి తీర్థం, 🌅 ప్రధాన బీచ్‌లో సూర్యాస్తమయం.
🏖️ **రోజు 2:** **కుడ్లే బీచ్** నుండి **ఓం బీచ్**, **హాఫ్ మూన్** మరియు **ప్యారడైజ్ బీచ్** వరకు ట్రెక్.
🧭 **రోజు 3:** నెమ్మదిగా ఉదయం, **మిర్జాన్ కోట** సందర్శన, సాయంత్రం తిరుగు ప్రయాణం.
{_SEPARATOR}
⚠️ జెండాలు ఉన్న చోట్ల మాత్రమే ఈత కొట్టండి.""",
    "ml-IN": f"""🌴 **ഗോകർണ്ണം 3 ദിവസത്തെ യാത്രാ പദ്ധതി**
{_SEPARATOR}
🕉️ **ദിവസം 1:** **മഹാബലേശ്വര ക്ഷേത്രം** ദർശനം, കോടി തീർത്ഥം, 🌅 പ്രധാന ബീച്ചിൽ സൂര്യാസ്തമയം.
🏖️ **ദിവസം 2:** **കുഡ്‌ലെ ബീച്ച്** മുതൽ **ഓം ബീച്ച്**, **ഹാഫ് മൂൺ**, **പാരഡൈസ് ബീച്ച്** വരെ ട്രെക്കിംഗ്.
🧭 **ദിവസം 3:** സാവധാനമുള്ള പ്രഭാതം, **മിർജാൻ കോട്ട** സന്ദർശനം, വൈകുന്നേരം മടക്കം.
{_SEPARATOR}
⚠️ കൊടി നാട്ടിയ സ്ഥലങ്ങളിൽ മാത്രം നീന്തുക.""",
}

LANGUAGE_CONFIRMATIONS: Dict[str, str] = {
    "en-US": "Certainly! I will now respond in English.",
    "hi-IN": "ज़रूर! अब मैं हिन्दी में जवाब दूँगा।",
    "kn-IN": "ಖಂಡಿತ! ಇನ್ನು ಮುಂದೆ ನಾನು ಕನ್ನಡದಲ್ಲಿ ಉತ್ತರಿಸುತ್ತೇನೆ.",
    "ta-IN": "நிச்சயமாக! இனி நான் தமிழில் பதிலளிப்பேன்.",
    "te-IN": "తప్పకుండా! ఇకపై నేను తెలుగులో సమాధానం ఇస్తాను.",
    "ml-IN": "തീർച്ചയായും! ഇനി ഞാൻ മലയാളത്തിൽ മറുപടി നൽകും.",
}

CHAT_FAILURE: Dict[str, str] = {
    "en-US": "Sorry, I encountered an error. Please try again.",
    "hi-IN": "क्षमा करें, एक त्रुटि हुई। कृपया फिर से प्रयास करें।",
    "kn-IN": "ಕ್ಷಮಿಸಿ, ದೋಷ ಸಂಭವಿಸಿದೆ. ದಯವಿಟ್ಟು ಮತ್ತೆ ಪ್ರಯತ್ನಿಸಿ.",
    "ta-IN": "மன்னிக்கவும், ஒரு பிழை ஏற்பட்டது. மீண்டும் முயற்சிக்கவும்.",
    "te-IN": "క్షమించండి, ఒక లోపం సంభవించింది. దయచేసి మళ్ళీ ప్రయత్నించండి.",
    "ml-IN": "ക്ഷമിക്കണം, ഒരു പിശക് സംഭവിച്ചു. ദയവായി വീണ്ടും ശ്രമിക്കുക.",
}

SUSTAINABILITY_TIPS: Dict[str, str] = {
    "en-US": "🌱 Sustainable travel tip: keep Gokarna's beaches clean. Carry your waste back with you and use a refillable water bottle.",
    "hi-IN": "🌱 टिकाऊ यात्रा सुझाव: गोकर्ण के समुद्र तटों को साफ़ रखें। अपना कचरा साथ ले जाएँ और दोबारा भरने योग्य पानी की बोतल इस्तेमाल करें।",
    "kn-IN": "🌱 ಸುಸ್ಥಿರ ಪ್ರವಾಸ ಸಲಹೆ: ಗೋಕರ್ಣದ ಕಡಲತೀರಗಳನ್ನು ಸ್ವಚ್ಛವಾಗಿಡಿ. ನಿಮ್ಮ ಕಸವನ್ನು ನಿಮ್ಮೊಂದಿಗೆ ತೆಗೆದುಕೊಂಡು ಹೋಗಿ.",
    "ta-IN": "🌱 நிலையான பயணக் குறிப்பு: கோகர்ணா கடற்கரைகளைச் சுத்தமாக வைத்திருங்கள். உங்கள் குப்பைகளை உங்களுடன் எடுத்துச் செல்லுங்கள்.",
    "te-IN": "🌱 సుస్థిర ప్రయాణ చిట్కా: గోకర్ణ బీచ్‌లను శుభ్రంగా ఉంచండి. మీ చెత్తను మీతో తీసుకెళ్ళండి.",
    "ml-IN": "🌱 സുസ്ഥിര യാത്രാ നിർദ്ദേശം: ഗോകർണ്ണത്തിലെ ബീച്ചുകൾ വൃത്തിയായി സൂക്ഷിക്കുക. നിങ്ങളുടെ മാലിന്യം കൂടെ കൊണ്ടുപോകുക.",
}

ART_STYLE_QUESTION = "Sounds creative! Which art style would you like?"

# Image failure wording, (generate, edit) per variant
IMAGE_FAILURES: Dict[str, Dict[str, str]] = {
    "generic": {
        "generate": "Sorry, I couldn't generate the image. Please try a different prompt.",
        "edit": "Sorry, I couldn't edit the image. Please try a different prompt or image.",
    },
    "safety": {
        "generate": "I'm unable to create an image for that request as it appears to violate safety guidelines. Could you please try a different idea?",
        "edit": "I'm unable to edit the image with that request as it appears to violate safety guidelines. Could you please try a different edit?",
    },
    "empty": {
        "generate": "It seems I had trouble creating an image for that prompt. Could you please try a different one?",
        "edit": "It seems I had trouble editing the image with that prompt. Could you please try a more descriptive or different edit?",
    },
    "blocked": {
        "generate": "I'm unable to create an image for that request because it was blocked. Please try rephrasing your prompt.",
        "edit": "I'm unable to edit the image with that request because it was blocked. Please try rephrasing your prompt.",
    },
}

# System notices
LOCATION_UNAVAILABLE = "⚠️ Could not access your location. Nearby search will be less accurate."
SUMMARIZING = "Summarizing..."
SUMMARY_FAILED = "Sorry, I couldn't summarize that. Please try again."
VIDEO_NEEDS_ONE_IMAGE = "Please upload exactly one image to generate a video."
FILE_UNREADABLE = "Could not read file. Please try again."

MIC_ERRORS: Dict[str, str] = {
    "not-allowed": "Microphone access denied. Please allow mic permission in your system settings.",
    "no-speech": "No speech was detected. Please tap the mic again to speak.",
    "audio-capture": "Microphone error. Another app might be using it. Please check and try again.",
    "unsupported": "Voice input is not supported on this system.",
    "other": "A microphone error occurred. Please check your connection and try again.",
}


# =============================================================================
# LOOKUPS
# =============================================================================

def find_language(code: str) -> Language:
    """Language for a code, defaulting to English."""
    for lang in LANGUAGES:
        if lang.code == code:
            return lang
    return LANGUAGES[0]


def language_by_name(name: str) -> Optional[Language]:
    """Case-insensitive lookup by English name."""
    lowered = name.lower()
    for lang in LANGUAGES:
        if lang.name.lower() == lowered:
            return lang
    return None


def localized(table: Dict[str, str], language_code: str) -> str:
    """Pick the entry for a language, falling back to English."""
    return table.get(language_code) or table[DEFAULT_LANGUAGE]
