"""D-ID talking-avatar client for the cybersecurity consultant"""

import time

import requests


DEFAULT_BASE_URL = 'https://api.d-id.com'

AVATAR_OPTIONS = [
    {
        'id': 'professional-woman',
        'name': 'Professional Consultant',
        'url': 'https://create-images-results.d-id.com/DefaultPresenters/Noelle_f/image.jpeg',
        'description': 'Professional cybersecurity consultant',
    },
    {
        'id': 'security-expert',
        'name': 'Security Expert',
        'url': 'https://create-images-results.d-id.com/DefaultPresenters/Maya_f/image.jpeg',
        'description': 'Cybersecurity expert and advisor',
    },
    {
        'id': 'tech-advisor',
        'name': 'Technology Advisor',
        'url': 'https://create-images-results.d-id.com/DefaultPresenters/Emma_f/image.jpeg',
        'description': 'Technology and compliance advisor',
    },
]


class DIDError(Exception):
    """D-ID API failure (non-2xx response or timeout)"""

    def __init__(self, message, status_code=None):
        super().__init__(message)
        self.status_code = status_code


class DIDService:

    def __init__(self, api_key=None, base_url=DEFAULT_BASE_URL, timeout=30):
        self.api_key = api_key or ''
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout

    def _request(self, method, endpoint, payload=None):
        response = requests.request(
            method,
            f"{self.base_url}{endpoint}",
            headers={
                'Authorization': f"Basic {self.api_key}",
                'Content-Type': 'application/json',
            },
            json=payload,
            timeout=self.timeout,
        )
        if not response.ok:
            try:
                detail = response.json().get('message') or 'Unknown error'
            except ValueError:
                detail = 'Unknown error'
            raise DIDError(
                f"D-ID API Error: {response.status_code} {response.reason} - {detail}",
                status_code=response.status_code,
            )
        if not response.content:
            return None
        return response.json()

    def create_talk(self, talk_request):
        return self._request('POST', '/talks', talk_request)

    def get_talk_status(self, talk_id):
        return self._request('GET', f"/talks/{talk_id}")

    def delete_talk(self, talk_id):
        self._request('DELETE', f"/talks/{talk_id}")

    def get_avatar_options(self):
        return [dict(avatar) for avatar in AVATAR_OPTIONS]

    def create_cybersecurity_talk(self, message, avatar_url=None, voice_id='en-US-JennyNeural'):
        return self.create_talk({
            'source_url': avatar_url or AVATAR_OPTIONS[0]['url'],
            'script': {
                'type': 'text',
                'input': message,
                'provider': {
                    'type': 'microsoft',
                    'voice_id': voice_id,
                },
            },
            'config': {
                'fluent': True,
                'pad_audio': 0.0,
                'stitch': True,
            },
        })

    def generate_cybersecurity_response(self, topic, context=None):
        """Canned consultant advice for a topic."""
        if topic == 'nca-ecc':
            return (
                "Based on the NCA Essential Cybersecurity Controls, I recommend implementing a layered security approach. "
                f"The NCA ECC framework provides comprehensive guidelines for {context or 'organizational cybersecurity'}. "
                "Key areas to focus on include governance, defense mechanisms, resilience planning, and third-party risk management."
            )
        if topic == 'risk-assessment':
            focus = f"Specifically for {context}, focus on" if context else 'Focus on'
            return (
                "For effective risk assessment, start with asset identification and threat modeling. "
                "Consider the likelihood and impact of potential security incidents. "
                "Use frameworks like NIST or ISO 27001 to structure your assessment. "
                f"{focus} vulnerability management and continuous monitoring."
            )
        if topic == 'compliance':
            lead = f"For {context} compliance," if context else 'For compliance,'
            return (
                "Cybersecurity compliance requires ongoing commitment. Establish clear policies, conduct regular audits, "
                f"and ensure staff training. {lead} document all processes and maintain evidence of control implementation. "
                "Regular reviews and updates are essential."
            )
        if topic == 'incident-response':
            lead = f"In the context of {context}, " if context else ''
            return (
                "A robust incident response plan is crucial. Define roles and responsibilities, establish communication "
                f"protocols, and conduct regular drills. {lead}Ensure you have both technical and legal response procedures. "
                "Recovery and lessons learned phases are equally important."
            )
        lead = f"Regarding {context}, " if context else ''
        return (
            "Cybersecurity is a continuous journey requiring vigilance and adaptation. "
            f"{lead}Focus on the fundamentals: strong authentication, regular updates, employee training, "
            "and proactive monitoring. Remember, security is everyone's responsibility in the organization."
        )

    def wait_for_talk_completion(self, talk_id, max_wait=60, poll_interval=2):
        """Poll the talk until it is done or errored."""
        deadline = time.monotonic() + max_wait
        while time.monotonic() < deadline:
            status = self.get_talk_status(talk_id)
            if status.get('status') in ('done', 'error'):
                return status
            time.sleep(poll_interval)
        raise DIDError('Talk generation timed out')
