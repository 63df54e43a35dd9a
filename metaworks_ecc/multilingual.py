"""Multilingual voice assistant (Sarah Johnson): Gemini for text, ElevenLabs for speech"""

import google.generativeai as genai
import requests


ELEVENLABS_TTS_URL = 'https://api.elevenlabs.io/v1/text-to-speech/'

DETECT_MODEL = 'gemini-2.5-flash'
TEXT_MODEL = 'gemini-2.5-pro'

LANGUAGE_NAMES = {
    'en': 'English',
    'ar': 'Arabic',
    'ur': 'Urdu',
    'hi': 'Hindi',
    'es': 'Spanish',
    'fr': 'French',
    'de': 'German',
    'zh': 'Chinese',
    'ja': 'Japanese',
    'ko': 'Korean',
}

# ElevenLabs voice per language
VOICE_MAPPING = {
    'en': 'pNInz6obpgDQGcFmaJgB',
    'ar': 'CwhRBWXzGAHq8TQ4Fs17',
    'ur': '9BWtsMINqrJLrRacOk9x',
    'hi': 'yoZ06aMxZJJ28mfd3POQ',
    'es': 'EXAVITQu4vr4xnSDxMaL',
    'fr': 'AZnzlk1XvdvUeBnXmlld',
    'de': 'ErXwobaYiN019PkySvjV',
    'zh': 'ODq5zmih8GrVes37Dizd',
}

VOICE_SETTINGS = {
    'stability': 0.5,
    'similarity_boost': 0.8,
    'style': 0.0,
    'use_speaker_boost': True,
}

AVAILABLE_LANGUAGES = [
    {'code': 'en', 'name': 'English', 'nativeName': 'English'},
    {'code': 'ar', 'name': 'Arabic', 'nativeName': 'العربية'},
    {'code': 'ur', 'name': 'Urdu', 'nativeName': 'اردو'},
    {'code': 'hi', 'name': 'Hindi', 'nativeName': 'हिन्दी'},
    {'code': 'es', 'name': 'Spanish', 'nativeName': 'Español'},
    {'code': 'fr', 'name': 'French', 'nativeName': 'Français'},
    {'code': 'de', 'name': 'German', 'nativeName': 'Deutsch'},
    {'code': 'zh', 'name': 'Chinese', 'nativeName': '中文'},
]

DETECT_INSTRUCTION = (
    "You are a language detection expert. Detect the language of the given text and respond "
    "with only the language code (en, ar, ur, hi, etc.). If unsure, respond with 'en'."
)

ENGLISH_FALLBACK = "I'm here to help you with cybersecurity compliance."
ARABIC_FALLBACK = "أنا هنا لمساعدتك في الامتثال للأمن السيبراني."


class MultilingualService:
    """Stateless wrapper around the Gemini and ElevenLabs APIs.

    Each call returns a fixed fallback instead of raising, so the assistant
    keeps answering when a hosted API is down or a key is missing.
    """

    def __init__(self, gemini_api_key=None, elevenlabs_api_key=None, timeout=30):
        self.gemini_api_key = gemini_api_key or ''
        self.elevenlabs_api_key = elevenlabs_api_key or ''
        self.timeout = timeout

    def _generate(self, model_name, system_instruction, contents):
        """Single Gemini call; returns the response text (may be empty)."""
        if not self.gemini_api_key:
            raise RuntimeError('Gemini API key not configured')
        genai.configure(api_key=self.gemini_api_key)
        model = genai.GenerativeModel(model_name, system_instruction=system_instruction)
        response = model.generate_content(contents)
        return response.text or ''

    def detect_language(self, text):
        try:
            code = self._generate(DETECT_MODEL, DETECT_INSTRUCTION, text)
            return code.strip().lower() or 'en'
        except Exception as e:
            print(f"Language detection error: {e}", flush=True)
            return 'en'

    def translate_text(self, text, target_language):
        target_name = LANGUAGE_NAMES.get(target_language, 'English')
        instruction = (
            f"You are a professional translator. Translate the given text accurately to {target_name}. "
            "Maintain the tone and context. Respond only with the translated text, no additional commentary."
        )
        try:
            translated = self._generate(TEXT_MODEL, instruction, f"Translate this text to {target_name}: {text}")
            return translated or text
        except Exception as e:
            print(f"Translation error: {e}", flush=True)
            return text

    def generate_speech(self, text, language='en', voice_id=None):
        """Synthesize speech with ElevenLabs. Returns MP3 bytes or None."""
        selected_voice = voice_id or VOICE_MAPPING.get(language) or VOICE_MAPPING['en']
        try:
            if not self.elevenlabs_api_key:
                raise RuntimeError('ElevenLabs API key not configured')
            response = requests.post(
                ELEVENLABS_TTS_URL + selected_voice,
                headers={
                    'Accept': 'audio/mpeg',
                    'Content-Type': 'application/json',
                    'xi-api-key': self.elevenlabs_api_key,
                },
                json={
                    'text': text,
                    'model_id': 'eleven_multilingual_v2',
                    'voice_settings': VOICE_SETTINGS,
                },
                timeout=self.timeout,
            )
            if not response.ok:
                raise RuntimeError(f"ElevenLabs API error: {response.status_code} {response.reason}")
            return response.content
        except Exception as e:
            print(f"Speech generation error: {e}", flush=True)
            return None

    def generate_response(self, message, language='en', context=''):
        target_name = LANGUAGE_NAMES.get(language, 'English')
        system_prompt = f"""You are Sarah Johnson, a professional AI assistant specializing in cybersecurity compliance and the NCA ECC framework.

Context: {context}

Respond in {target_name} with:
- Professional, helpful tone
- Accurate cybersecurity guidance
- Cultural sensitivity for the language
- Keep responses concise but informative
- Always maintain your identity as Sarah Johnson"""
        try:
            answer = self._generate(TEXT_MODEL, system_prompt, message)
            return answer or f"{ENGLISH_FALLBACK} ({target_name})"
        except Exception as e:
            print(f"Response generation error: {e}", flush=True)
            return ENGLISH_FALLBACK if language == 'en' else ARABIC_FALLBACK

    def get_available_languages(self):
        return [dict(lang) for lang in AVAILABLE_LANGUAGES]
