"""
Language registry.

WHAT: Per-language greeting, stage prompts and commodity synonyms
WHY: Every reply is spoken back in the seller's own language
HOW: Immutable profiles built once at import; lookup by code or speech code
"""

import unicodedata
from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping

from ..utils.exceptions import UnsupportedLanguageError

FALLBACK_LANGUAGE = "en"


@dataclass(frozen=True)
class LanguageProfile:
    """Immutable description of one supported language."""
    code: str
    name: str
    english_name: str
    speech_code: str
    greeting: str
    prompts: Mapping[str, str]
    commodity_synonyms: Mapping[str, str]  # synonym -> canonical commodity, ordered


# Stage prompt templates. Keys missing from a language fall back to English.
_PROMPTS: dict[str, dict[str, str]] = {
    "hi": {
        "ask_commodity": "आप कौन सी फसल बेचना चाहते हैं? जैसे प्याज़, आलू, टमाटर... आप एक ही बार में सब कुछ बता सकते हैं जैसे '400 क्विंटल गेहूं 50 रुपये क्विंटल में बेचना है'",
        "ask_quantity": "कितना {commodity} बेचना है? किलो या क्विंटल में बताइए।",
        "ask_grade": "{commodity} की क्वालिटी कैसी है? अच्छी, मीडियम, या मिक्स?",
        "ask_price_preference": "आपको कितने रुपये प्रति किलो चाहिए? या मंडी का भाव देखना है?",
        "market_prices": "{market} में {commodity} का भाव ₹{min} से ₹{max} प्रति किलो है, औसत ₹{avg}। बाज़ार {trend} है। क्या मंडी भाव पर बेचें, या आप अपना दाम बताएंगे?",
        "ask_own_price": "ठीक है। आपको कितने रुपये प्रति किलो चाहिए?",
        "trend_rising": "तेज़ी में",
        "trend_stable": "स्थिर",
        "trend_falling": "मंदी में",
        "listing_summary": "{quantity} किलो {commodity}, {grade} क्वालिटी, {price} रुपये प्रति किलो।",
        "listing_summary_market": "{quantity} किलो {commodity}, {grade} क्वालिटी, मंडी भाव पर (लगभग ₹{price} प्रति किलो)।",
        "confirm_broadcast": "क्या मैं खरीदारों को भेजूं?",
        "broadcasting": "ठीक है। खरीदारों को भेज रहा हूं। कृपया प्रतीक्षा करें...",
        "success": "बधाई हो! {buyer} ने {amount} रुपये प्रति किलो का ऑफर दिया है!",
        "cancelled": "कोई बात नहीं। जब चाहें फिर से बोलें।",
        "not_understood_commodity": "माफ़ कीजिए, समझ नहीं आया। कौन सी फसल बेचनी है?",
        "not_understood_quantity": "कितना किलो या क्विंटल है? कृपया दोबारा बताइए।",
        "invalid_price": "दाम शून्य या उससे ज़्यादा होना चाहिए। आपको कितने रुपये प्रति किलो चाहिए?",
        "error_retry": "माफ़ कीजिए, कृपया दोबारा बोलें।",
        "error_general": "कुछ गड़बड़ हो गई। कृपया दोबारा कोशिश करें।",
    },
    "mr": {
        "ask_commodity": "तुम्हाला कोणते पीक विकायचे आहे? जसे कांदा, बटाटा, टोमॅटो... तुम्ही एकदम सगळे सांगू शकता जसे '४०० क्विंटल गहू ५० रुपये क्विंटलला विकायचा आहे'",
        "ask_quantity": "किती {commodity} विकायचे आहे? किलो किंवा क्विंटल मध्ये सांगा.",
        "ask_grade": "{commodity} ची गुणवत्ता कशी आहे? चांगली, मध्यम, किंवा मिश्र?",
        "ask_price_preference": "तुम्हाला प्रति किलो किती रुपये हवे आहेत? किंवा बाजार भाव बघायचा आहे का?",
        "listing_summary": "{quantity} किलो {commodity}, {grade} गुणवत्ता, {price} रुपये प्रति किलो.",
        "confirm_broadcast": "खरेदीदारांना पाठवू का?",
        "broadcasting": "ठीक आहे. खरेदीदारांना पाठवत आहे. कृपया वाट पहा...",
        "success": "अभिनंदन! {buyer} यांनी प्रति किलो {amount} रुपयांची ऑफर दिली आहे!",
        "cancelled": "काही हरकत नाही. पुन्हा केव्हाही बोला.",
        "not_understood_commodity": "माफ करा, समजले नाही. कोणते पीक विकायचे आहे?",
        "not_understood_quantity": "किती किलो किंवा क्विंटल आहे? कृपया पुन्हा सांगा.",
        "error_retry": "माफ करा, कृपया पुन्हा बोला.",
        "error_general": "काहीतरी चूक झाली. कृपया पुन्हा प्रयत्न करा.",
    },
    "ta": {
        "ask_commodity": "எந்த பயிரை விற்க விரும்புகிறீர்கள்? வெங்காயம், உருளைக்கிழங்கு, தக்காளி போன்றவை... நீங்கள் எல்லாவற்றையும் ஒரே நேரத்தில் சொல்லலாம், எ.கா. '400 குவிண்டால் கோதுமை 50 ரூபாய்க்கு விற்க வேண்டும்'",
        "ask_quantity": "எவ்வளவு {commodity} விற்க வேண்டும்? கிலோ அல்லது குவிண்டாலில் சொல்லுங்கள்.",
        "ask_grade": "{commodity} தரம் எப்படி இருக்கிறது? நல்லது, நடுத்தரம், அல்லது கலப்பு?",
        "ask_price_preference": "கிலோவுக்கு எவ்வளவு விலை வேண்டும்? அல்லது சந்தை விலை பார்க்கணுமா?",
        "listing_summary": "{quantity} கிலோ {commodity}, {grade} தரம், {price} ரூபாய் கிலோவுக்கு.",
        "confirm_broadcast": "வாங்குபவர்களுக்கு அனுப்பட்டுமா?",
        "broadcasting": "சரி. வாங்குபவர்களுக்கு அனுப்புகிறேன். தயவுசெய்து காத்திருங்கள்...",
        "success": "வாழ்த்துக்கள்! {buyer} கிலோவுக்கு {amount} ரூபாய் கொடுக்க முன்வந்துள்ளார்!",
        "cancelled": "பரவாயில்லை. எப்போது வேண்டுமானாலும் மீண்டும் பேசுங்கள்.",
        "not_understood_commodity": "மன்னிக்கவும், புரியவில்லை. எந்த பயிரை விற்க வேண்டும்?",
        "not_understood_quantity": "எத்தனை கிலோ அல்லது குவிண்டால்? மீண்டும் சொல்லுங்கள்.",
        "error_retry": "மன்னிக்கவும், மீண்டும் பேசுங்கள்.",
        "error_general": "ஏதோ பிழை ஏற்பட்டது. மீண்டும் முயற்சிக்கவும்.",
    },
    "te": {
        "ask_commodity": "ఏ పంట అమ్మాలనుకుంటున్నారు? ఉల్లిపాయలు, బంగాళాదుంపలు, టొమాటోలు వంటివి... మీరు అన్నీ ఒకేసారి చెప్పవచ్చు, ఉదా. '400 క్వింటాళ్ల గోధుమలు 50 రూపాయలకు అమ్మాలి'",
        "ask_quantity": "ఎంత {commodity} అమ్మాలి? కిలోలు లేదా క్వింటాళ్లలో చెప్పండి.",
        "ask_grade": "{commodity} నాణ్యత ఎలా ఉంది? మంచిది, మధ్యస్థం, లేదా మిశ్రమం?",
        "ask_price_preference": "కిలోకు ఎంత రూపాయలు కావాలి? లేదా మార్కెట్ ధర చూడాలా?",
        "listing_summary": "{quantity} కిలోలు {commodity}, {grade} నాణ్యత, {price} రూపాయలు కిలోకు.",
        "confirm_broadcast": "కొనుగోలుదారులకు పంపమంటారా?",
        "broadcasting": "సరే. కొనుగోలుదారులకు పంపుతున్నాను. దయచేసి వేచి ఉండండి...",
        "success": "అభినందనలు! {buyer} కిలోకు {amount} రూపాయలు ఆఫర్ చేశారు!",
        "cancelled": "పర్వాలేదు. ఎప్పుడైనా మళ్ళీ మాట్లాడండి.",
        "not_understood_commodity": "క్షమించండి, అర్థం కాలేదు. ఏ పంట అమ్మాలనుకుంటున్నారు?",
        "not_understood_quantity": "ఎన్ని కిలోలు లేదా క్వింటాళ్లు? దయచేసి మళ్ళీ చెప్పండి.",
        "error_retry": "క్షమించండి, దయచేసి మళ్ళీ చెప్పండి.",
        "error_general": "ఏదో తప్పు జరిగింది. దయచేసి మళ్ళీ ప్రయత్నించండి.",
    },
    "en": {
        "ask_commodity": "What crop do you want to sell? Like onion, potato, tomato... You can also tell everything at once, like '400 quintals of wheat at 50 rupees per quintal'",
        "ask_quantity": "How much {commodity} do you want to sell? Tell in kg or quintal.",
        "ask_grade": "What is the quality of {commodity}? Good, medium, or mixed?",
        "ask_price_preference": "How much rupees per kg do you want? Or want to see market price?",
        "market_prices": "{commodity} at {market} sells for ₹{min} to ₹{max} per kg, average ₹{avg}. Prices are {trend}. Shall I use the market price, or will you tell your own price?",
        "ask_own_price": "Okay. How much rupees per kg do you want?",
        "trend_rising": "rising",
        "trend_stable": "stable",
        "trend_falling": "falling",
        "listing_summary": "{quantity} kg {commodity}, {grade} quality, {price} rupees per kg.",
        "listing_summary_market": "{quantity} kg {commodity}, {grade} quality, at market price (about ₹{price} per kg).",
        "confirm_broadcast": "Should I send to buyers?",
        "broadcasting": "Okay. Sending to buyers. Please wait...",
        "success": "Congratulations! {buyer} has offered {amount} rupees per kg!",
        "cancelled": "No problem. Talk again whenever you want.",
        "not_understood_commodity": "Sorry, I didn't understand. What crop do you want to sell?",
        "not_understood_quantity": "How many kg or quintals? Please tell again.",
        "invalid_price": "The price must be zero or more. How much rupees per kg do you want?",
        "error_retry": "Sorry, please speak again.",
        "error_general": "Something went wrong. Please try again.",
    },
}

# Native terms per language; checked before the shared table.
_NATIVE_SYNONYMS: dict[str, tuple[tuple[str, str], ...]] = {
    "hi": (
        ("प्याज़", "onion"), ("प्याज", "onion"),
        ("आलू", "potato"),
        ("टमाटर", "tomato"),
        ("गेहूँ", "wheat"), ("गेहूं", "wheat"), ("गेहू", "wheat"),
        ("चावल", "rice"), ("धान", "rice"),
        ("फूलगोभी", "cauliflower"), ("फूल गोभी", "cauliflower"),
        ("पत्तागोभी", "cabbage"), ("पत्ता गोभी", "cabbage"), ("बंदगोभी", "cabbage"),
        ("गाजर", "carrot"),
        ("लहसुन", "garlic"),
        ("अदरक", "ginger"),
        ("मिर्च", "chilli"),
        ("बैंगन", "brinjal"),
        ("खीरा", "cucumber"),
        ("केला", "banana"), ("केले", "banana"),
        ("सेब", "apple"),
        ("दाल", "lentil"),
        ("आम", "mango"),
    ),
    "mr": (
        ("कांदा", "onion"), ("कांदे", "onion"),
        ("बटाटा", "potato"), ("बटाटे", "potato"),
        ("टोमॅटो", "tomato"),
        ("गहू", "wheat"),
        ("तांदूळ", "rice"),
        ("फ्लॉवर", "cauliflower"),
        ("कोबी", "cabbage"),
        ("गाजर", "carrot"),
        ("लसूण", "garlic"),
        ("आले", "ginger"),
        ("मिरची", "chilli"),
        ("वांगी", "brinjal"), ("वांगे", "brinjal"),
        ("केळी", "banana"),
        ("सफरचंद", "apple"),
        ("आंबा", "mango"), ("आंबे", "mango"),
    ),
    "ta": (
        ("வெங்காயம்", "onion"),
        ("உருளைக்கிழங்கு", "potato"),
        ("தக்காளி", "tomato"),
        ("கோதுமை", "wheat"),
        ("அரிசி", "rice"),
        ("காலிஃபிளவர்", "cauliflower"),
        ("முட்டைக்கோஸ்", "cabbage"),
        ("கேரட்", "carrot"),
        ("பூண்டு", "garlic"),
        ("இஞ்சி", "ginger"),
        ("மிளகாய்", "chilli"),
        ("கத்தரிக்காய்", "brinjal"),
        ("வாழைப்பழம்", "banana"),
        ("ஆப்பிள்", "apple"),
        ("மாம்பழம்", "mango"),
    ),
    "te": (
        ("ఉల్లిపాయ", "onion"), ("ఉల్లి", "onion"),
        ("బంగాళాదుంప", "potato"),
        ("టమాటా", "tomato"), ("టొమాటో", "tomato"),
        ("గోధుమ", "wheat"),
        ("బియ్యం", "rice"),
        ("కాలీఫ్లవర్", "cauliflower"),
        ("క్యాబేజీ", "cabbage"),
        ("క్యారెట్", "carrot"),
        ("వెల్లుల్లి", "garlic"),
        ("అల్లం", "ginger"),
        ("మిరప", "chilli"),
        ("వంకాయ", "brinjal"),
        ("అరటి", "banana"),
        ("ఆపిల్", "apple"),
        ("మామిడి", "mango"),
    ),
    "kn": (("ಈರುಳ್ಳಿ", "onion"), ("ಆಲೂಗಡ್ಡೆ", "potato"), ("ಟೊಮೆಟೊ", "tomato"), ("ಗೋಧಿ", "wheat"), ("ಅಕ್ಕಿ", "rice")),
    "bn": (("পেঁয়াজ", "onion"), ("আলু", "potato"), ("টমেটো", "tomato"), ("গম", "wheat"), ("চাল", "rice")),
    "gu": (("ડુંગળી", "onion"), ("બટાકા", "potato"), ("ટામેટા", "tomato"), ("ઘઉં", "wheat"), ("ચોખા", "rice")),
    "pa": (("ਪਿਆਜ਼", "onion"), ("ਆਲੂ", "potato"), ("ਟਮਾਟਰ", "tomato"), ("ਕਣਕ", "wheat"), ("ਚੌਲ", "rice")),
    "or": (("ପିଆଜ", "onion"), ("ଆଳୁ", "potato"), ("ଟମାଟୋ", "tomato"), ("ଗହମ", "wheat"), ("ଚାଉଳ", "rice")),
    "as": (("পিঁয়াজ", "onion"), ("আলু", "potato"), ("বিলাহী", "tomato"), ("ঘেঁহু", "wheat"), ("চাউল", "rice")),
    "ml": (("ഉള്ളി", "onion"), ("ഉരുളക്കിഴങ്ങ്", "potato"), ("തക്കാളി", "tomato"), ("ഗോതമ്പ്", "wheat"), ("അരി", "rice")),
    "en": (),
}

# English and romanized Hindi/Marathi terms shared by every language.
_SHARED_SYNONYMS: tuple[tuple[str, str], ...] = (
    ("onion", "onion"), ("pyaaz", "onion"), ("pyaz", "onion"), ("kanda", "onion"),
    ("potato", "potato"), ("aloo", "potato"), ("batata", "potato"),
    ("tomato", "tomato"), ("tamatar", "tomato"),
    ("wheat", "wheat"), ("gehun", "wheat"), ("gehu", "wheat"),
    ("basmati", "rice"), ("chawal", "rice"), ("rice", "rice"),
    ("cauliflower", "cauliflower"), ("phool gobhi", "cauliflower"),
    ("cabbage", "cabbage"), ("patta gobhi", "cabbage"), ("band gobhi", "cabbage"),
    ("carrot", "carrot"), ("gajar", "carrot"),
    ("garlic", "garlic"), ("lahsun", "garlic"),
    ("ginger", "ginger"), ("adrak", "ginger"),
    ("chilli", "chilli"), ("chili", "chilli"), ("mirch", "chilli"),
    ("brinjal", "brinjal"), ("eggplant", "brinjal"), ("baingan", "brinjal"),
    ("cucumber", "cucumber"), ("kheera", "cucumber"), ("kakdi", "cucumber"),
    ("banana", "banana"), ("kela", "banana"),
    ("apple", "apple"), ("seb", "apple"),
    ("lentil", "lentil"), ("daal", "lentil"), ("dal", "lentil"),
    ("mango", "mango"), ("alphonso", "mango"), ("aam", "mango"),
)

# (code, native name, english name, speech code, greeting)
_LANGUAGES: tuple[tuple[str, str, str, str, str], ...] = (
    ("hi", "हिंदी", "Hindi", "hi-IN", "नमस्ते! मैं आपकी फसल बेचने में मदद करूँगा।"),
    ("mr", "मराठी", "Marathi", "mr-IN", "नमस्कार! मी तुम्हाला तुमची पिके विकण्यात मदत करेन।"),
    ("ta", "தமிழ்", "Tamil", "ta-IN", "வணக்கம்! உங்கள் விளைபொருட்களை விற்க நான் உதவுவேன்।"),
    ("te", "తెలుగు", "Telugu", "te-IN", "నమస్కారం! మీ పంటలను అమ్మడంలో నేను సహాయం చేస్తాను।"),
    ("kn", "ಕನ್ನಡ", "Kannada", "kn-IN", "ನಮಸ್ಕಾರ! ನಿಮ್ಮ ಬೆಳೆಗಳನ್ನು ಮಾರಾಟ ಮಾಡಲು ನಾನು ಸಹಾಯ ಮಾಡುತ್ತೇನೆ।"),
    ("bn", "বাংলা", "Bengali", "bn-IN", "নমস্কার! আমি আপনার ফসল বিক্রি করতে সাহায্য করব।"),
    ("gu", "ગુજરાતી", "Gujarati", "gu-IN", "નમસ્તે! હું તમારા પાકને વેચવામાં મદદ કરીશ।"),
    ("pa", "ਪੰਜਾਬੀ", "Punjabi", "pa-IN", "ਸਤ ਸ੍ਰੀ ਅਕਾਲ! ਮੈਂ ਤੁਹਾਡੀ ਫ਼ਸਲ ਵੇਚਣ ਵਿੱਚ ਮਦਦ ਕਰਾਂਗਾ।"),
    ("or", "ଓଡ଼ିଆ", "Odia", "or-IN", "ନମସ୍କାର! ମୁଁ ଆପଣଙ୍କ ଫସଲ ବିକ୍ରି କରିବାରେ ସାହାଯ୍ୟ କରିବି।"),
    ("as", "অসমীয়া", "Assamese", "as-IN", "নমস্কাৰ! মই আপোনাৰ শস্য বিক্ৰী কৰাত সহায় কৰিম।"),
    ("ml", "മലയാളം", "Malayalam", "ml-IN", "നമസ്കാരം! നിങ്ങളുടെ വിളകള്‍ വില്‍ക്കാന്‍ ഞാന്‍ സഹായിക്കും।"),
    ("en", "English", "English", "en-IN", "Hello! I will help you sell your crops."),
)


def _normalize(text: str) -> str:
    # NFC splits precomposed nukta letters (e.g. U+095B), so "प्याज" matches "प्याज़"
    return unicodedata.normalize("NFC", text).lower()


def _build_profiles() -> dict[str, LanguageProfile]:
    profiles = {}
    for code, name, english_name, speech_code, greeting in _LANGUAGES:
        synonyms: dict[str, str] = {}
        for term, canonical in _NATIVE_SYNONYMS.get(code, ()) + _SHARED_SYNONYMS:
            synonyms.setdefault(_normalize(term), canonical)
        profiles[code] = LanguageProfile(
            code=code,
            name=name,
            english_name=english_name,
            speech_code=speech_code,
            greeting=greeting,
            prompts=MappingProxyType(dict(_PROMPTS.get(code, {}))),
            commodity_synonyms=MappingProxyType(synonyms),
        )
    return profiles


_PROFILES = _build_profiles()
_BY_SPEECH_CODE = {p.speech_code.lower(): p for p in _PROFILES.values()}


def get_profile(code: str) -> LanguageProfile:
    """
    Look up a language profile.

    Accepts the short code ("hi") or the speech code ("hi-IN"), case-insensitive.

    Raises:
        UnsupportedLanguageError: No profile for the code
    """
    key = (code or "").strip().lower()
    profile = _PROFILES.get(key) or _BY_SPEECH_CODE.get(key)
    if profile is None:
        raise UnsupportedLanguageError(code)
    return profile


def list_all() -> tuple[LanguageProfile, ...]:
    """All supported profiles in registration order."""
    return tuple(_PROFILES.values())


class _Placeholders(dict):
    """Leaves unknown {placeholders} in place instead of raising."""

    def __missing__(self, key: str) -> str:
        return "{" + key + "}"


def render(profile: LanguageProfile, key: str, **values) -> str:
    """
    Render a prompt template in the profile's language.

    Falls back to the English template when the profile lacks the key.

    Raises:
        KeyError: Unknown template key
    """
    template = profile.prompts.get(key)
    if template is None:
        template = _PROFILES[FALLBACK_LANGUAGE].prompts[key]
    return template.format_map(_Placeholders(values))


def resolve_commodity(profile: LanguageProfile, text: str) -> tuple[str, bool]:
    """
    Map spoken commodity text to a canonical commodity.

    First synonym contained in the text wins (case-insensitive).

    Returns:
        (canonical name, True) on a match, (raw text, False) otherwise
    """
    raw = text.strip()
    lowered = _normalize(raw)
    for term, canonical in profile.commodity_synonyms.items():
        if term in lowered:
            return canonical, True
    return raw, False
