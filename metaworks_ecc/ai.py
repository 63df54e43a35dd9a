"""AI policy generation and compliance assistance.

Provider selection follows the configured keys: an explicit AI_PROVIDER wins
when its key is present, otherwise Anthropic > OpenAI > Groq > Google. Every
helper takes the settings object (anything exposing the *_API_KEY,
AI_PROVIDER and AI_MODEL attributes) so it can run outside a request.
"""

from datetime import datetime


PROVIDER_ORDER = ('anthropic', 'openai', 'groq', 'google')

PROVIDER_NAMES = {
    'openai': 'OpenAI',
    'anthropic': 'Anthropic Claude',
    'google': 'Google Gemini',
    'groq': 'Groq (Llama 3.1)',
}

POLICY_SYSTEM_PROMPT = (
    "You are an expert cybersecurity policy generator specializing in NCA ECC compliance. "
    "Generate clear, actionable policies that align with regulatory requirements and "
    "provide practical implementation steps."
)

COMPLIANCE_SYSTEM_PROMPT = (
    "You are a cybersecurity compliance assistant for the NCA ECC (Essential Cybersecurity "
    "Controls) framework. Answer precisely, reference the relevant ECC domain when it applies "
    "and suggest concrete next steps."
)

LANGUAGE_NAMES = {
    'en': 'English',
    'ar': 'Arabic',
    'ur': 'Urdu',
    'hi': 'Hindi',
    'es': 'Spanish',
    'fr': 'French',
    'de': 'German',
    'zh': 'Chinese',
}


def _provider_keys(config):
    return {
        'anthropic': config.ANTHROPIC_API_KEY,
        'openai': config.OPENAI_API_KEY,
        'groq': config.GROQ_API_KEY,
        'google': config.GOOGLE_API_KEY,
    }


def get_ai_provider(config):
    """Determine which AI provider to use based on the configured keys."""
    keys = _provider_keys(config)
    provider = (config.AI_PROVIDER or 'auto').lower()

    if provider in keys and keys[provider]:
        return provider
    # Priority: Anthropic > OpenAI > Groq > Google
    for name in PROVIDER_ORDER:
        if keys[name]:
            return name
    return None


def get_ai_status(config):
    """Get current AI provider status for display."""
    provider = get_ai_provider(config)
    if not provider:
        return {'provider': 'simulation', 'model': 'Built-in', 'connected': False}

    models = {
        'openai': _model_for(config, 'gpt', 'gpt-4o'),
        'anthropic': _model_for(config, 'claude', 'claude-sonnet-4-20250514'),
        'google': _model_for(config, 'gemini', 'gemini-2.0-flash'),
        'groq': _model_for(config, 'llama', 'llama-3.1-70b-versatile'),
    }
    return {'provider': PROVIDER_NAMES[provider], 'model': models[provider], 'connected': True}


def _model_for(config, family, default):
    if config.AI_MODEL and family in config.AI_MODEL.lower():
        return config.AI_MODEL
    return default


def generate_ai_content(config, system_prompt, prompt):
    """Generate text with the preferred provider, falling back to the others.

    Returns None when no provider is configured or every provider fails.
    """
    provider = get_ai_provider(config)
    if not provider:
        print("DEBUG: No AI provider available", flush=True)
        return None

    keys = _provider_keys(config)
    candidates = [provider] + [name for name in PROVIDER_ORDER if name != provider and keys[name]]

    for name in candidates:
        try:
            result = _call_provider(name, config, system_prompt, prompt)
            if result:
                return result
            print(f"DEBUG: {name} returned empty content", flush=True)
        except Exception as e:
            print(f"DEBUG: {name} failed: {e}", flush=True)

    print("DEBUG: All AI providers failed", flush=True)
    return None


def _generate_openai(config, system_prompt, prompt):
    """Generate using OpenAI API."""
    import openai
    client = openai.OpenAI(api_key=config.OPENAI_API_KEY)
    model = _model_for(config, 'gpt', 'gpt-4o')

    print(f"DEBUG: Calling OpenAI ({model})...", flush=True)
    response = client.chat.completions.create(
        model=model,
        messages=[
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": prompt}
        ],
        max_tokens=2000,
        temperature=0.7
    )
    result = response.choices[0].message.content
    print(f"DEBUG: OpenAI success, length: {len(result or '')}", flush=True)
    return result


def _generate_anthropic(config, system_prompt, prompt):
    """Generate using Anthropic Claude API."""
    import anthropic
    client = anthropic.Anthropic(api_key=config.ANTHROPIC_API_KEY)
    model = _model_for(config, 'claude', 'claude-sonnet-4-20250514')

    print(f"DEBUG: Calling Anthropic ({model})...", flush=True)
    response = client.messages.create(
        model=model,
        max_tokens=2000,
        system=system_prompt,
        messages=[{"role": "user", "content": prompt}]
    )
    result = response.content[0].text
    print(f"DEBUG: Anthropic success, length: {len(result)}", flush=True)
    return result


def _generate_google(config, system_prompt, prompt):
    """Generate using Google Gemini API."""
    import google.generativeai as genai
    genai.configure(api_key=config.GOOGLE_API_KEY)
    model_name = _model_for(config, 'gemini', 'gemini-2.0-flash')

    print(f"DEBUG: Calling Google Gemini ({model_name})...", flush=True)
    model = genai.GenerativeModel(model_name)
    response = model.generate_content(f"{system_prompt}\n\n{prompt}")
    result = response.text
    print(f"DEBUG: Google Gemini success, length: {len(result)}", flush=True)
    return result


def _generate_groq(config, system_prompt, prompt):
    """Generate using Groq's OpenAI-compatible API."""
    from openai import OpenAI
    client = OpenAI(
        api_key=config.GROQ_API_KEY,
        base_url="https://api.groq.com/openai/v1"
    )
    model = _model_for(config, 'llama', 'llama-3.1-70b-versatile')

    print(f"DEBUG: Calling Groq ({model})...", flush=True)
    response = client.chat.completions.create(
        model=model,
        messages=[
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": prompt}
        ],
        max_tokens=2000,
        temperature=0.7
    )
    result = response.choices[0].message.content
    print(f"DEBUG: Groq success, length: {len(result or '')}", flush=True)
    return result


def _call_provider(name, config, system_prompt, prompt):
    if name == 'openai':
        return _generate_openai(config, system_prompt, prompt)
    elif name == 'anthropic':
        return _generate_anthropic(config, system_prompt, prompt)
    elif name == 'google':
        return _generate_google(config, system_prompt, prompt)
    elif name == 'groq':
        return _generate_groq(config, system_prompt, prompt)
    raise ValueError(f"Unknown AI provider: {name}")


def _language_instruction(language):
    if not language or language == 'en':
        return ''
    name = LANGUAGE_NAMES.get(language, 'English')
    return f"\n\nWrite the entire response in {name}."


def policy_template(domain, subdomain=''):
    """Built-in policy used when no AI provider answers."""
    subdomain_text = f" - {subdomain}" if subdomain else ''
    focus = f" with focus on {subdomain}" if subdomain else ''
    return f"""# Security Policy for {domain}{subdomain_text}

## Overview
This security policy outlines the requirements and best practices for maintaining
security within the {domain} domain{focus}.

## Requirements
1. All systems must be regularly updated with security patches
2. Access controls must follow principle of least privilege
3. Regular security assessments must be conducted
4. Incidents must be reported and handled according to established procedures

## Compliance
All personnel must adhere to these policies. Violations may result in
disciplinary actions as outlined in the organization's code of conduct.

Generated: {datetime.now().isoformat()}
"""


def generate_security_policy(config, domain, subdomain='', language='en'):
    """Generate an NCA ECC aligned security policy in markdown."""
    focus = f' with focus on the subdomain "{subdomain}"' if subdomain else ''
    prompt = f"""Generate a comprehensive security policy for the domain "{domain}"{focus}. The policy should align with NCA ECC (Essential Cybersecurity Controls) framework requirements.

Structure the policy with the following sections:
1. Overview and Purpose
2. Scope and Applicability
3. Specific Requirements and Controls
4. Compliance and Enforcement
5. Review and Updates{_language_instruction(language)}"""

    content = generate_ai_content(config, POLICY_SYSTEM_PROMPT, prompt)
    if content:
        return content
    print(f"⚠️ Using built-in policy template for {domain}", flush=True)
    return policy_template(domain, subdomain)


def compliance_fallback(query):
    """Keyword-based answer used when no AI provider answers."""
    lowered = query.lower()
    if 'nca ecc' in lowered:
        return """The NCA ECC (Essential Cybersecurity Controls) framework includes 5 domains:

1. Governance - Establishes leadership, policies, and risk management
2. Cybersecurity Defence - Focuses on technical controls like access management and encryption
3. Cybersecurity Resilience - Covers incident response and business continuity
4. Third Party Cloud Computing - Addresses cloud security and vendor management
5. Industrial Control Systems - Specialized controls for operational technology

Would you like specific information about any of these domains?"""

    if 'policy' in lowered:
        return """For effective security policies, you should:

1. Align with NCA ECC requirements and other applicable regulations
2. Customize policies for your specific organization and environment
3. Ensure policies are clear, comprehensive, and actionable
4. Establish regular review and update procedures
5. Implement training and awareness programs

I can help you draft policies for specific domains if you'd like."""

    return f"""Here's information about your query on "{query}":

Based on NCA ECC requirements, this area requires proper documentation,
regular assessments, and specific controls to be implemented.

Would you like me to help you develop a compliance plan for this topic?"""


def generate_compliance_response(config, query, language='en'):
    """Answer a compliance question, with keyword fallbacks."""
    content = generate_ai_content(config, COMPLIANCE_SYSTEM_PROMPT, query + _language_instruction(language))
    if content:
        return content
    return compliance_fallback(query)
