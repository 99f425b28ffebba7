STRATEGY_PROMPT = """
Create a unique differentiation strategy by combining these user experiences/attributes: {EXPERIENCES} with this cross-industry concept: {ANALOGY}.

Provide a creative, actionable differentiation idea that leverages the user's background in a unique way. Focus on practical application and competitive advantage. Keep it concise but inspiring.
"""

CATCHPHRASE_PROMPT = """
Based on this differentiation strategy: "{STRATEGY}", create a memorable, punchy catchphrase or tagline that captures the essence of this unique approach. Make it catchy, professional, and memorable. Provide just the catchphrase, nothing else.
"""

GREETING_TEMPLATE = "Hello! I'm your {TITLE}. {DESCRIPTION} What would you like to explore today?"

STRATEGY_MAX_TOKENS = 200
CATCHPHRASE_MAX_TOKENS = 50
CHAT_MAX_TOKENS = 500


DIFFERENTIATION_QUESTIONS = [
    "What unique combination of skills or experiences do you possess that others in your field typically don't have?",
    "How could you apply a successful strategy from a completely different industry to your current work or goals?",
    "What problem are you uniquely positioned to solve because of your specific background or perspective?",
    "If you had to explain your value proposition in one sentence, what would make someone choose you over alternatives?",
    "What unconventional approach could you take to a common challenge in your field?",
    "How do your personal values or life experiences create a different lens through which you approach problems?",
    "What would you do differently if you were starting fresh in your field today, knowing what you know now?",
    "How could you combine two seemingly unrelated interests or skills to create something new?",
    "What assumptions in your industry do you disagree with, and how could that disagreement become an advantage?",
    "If you could only be known for one thing professionally, what would create the most meaningful impact?",
]

EXPERIENCE_CATEGORIES = [
    "Technology", "Healthcare", "Education", "Finance", "Retail", "Manufacturing",
    "Hospitality", "Transportation", "Entertainment", "Sports", "Art", "Music",
    "Consulting", "Marketing", "Sales", "Operations", "Leadership", "Startup",
    "Non-profit", "Government", "Research", "Design", "Writing", "Photography",
]

CROSS_INDUSTRY_IDEAS = [
    "Subscription model from Netflix → Apply to fitness coaching",
    "Gamification from video games → Apply to learning platforms",
    "Just-in-time delivery from Toyota → Apply to content creation",
    "Freemium model from software → Apply to consulting services",
    "Community building from Discord → Apply to professional networking",
    "Personalization from Spotify → Apply to meal planning",
    "Marketplace model from Airbnb → Apply to skill sharing",
    "Automation from manufacturing → Apply to customer service",
    "Storytelling from Disney → Apply to brand marketing",
    "Minimalism from Apple → Apply to productivity tools",
]

ROLE_PLAY_SCENARIOS = [
    {
        "title": "Career Coach",
        "description": "Get guidance on career development and differentiation strategies",
        "system_prompt": (
            "You are an experienced career coach specializing in helping professionals identify and "
            "leverage their unique value propositions. Help me explore my differentiation opportunities "
            "and career growth strategies."
        ),
    },
    {
        "title": "Business Mentor",
        "description": "Discuss business ideas and entrepreneurial differentiation",
        "system_prompt": (
            "You are a successful business mentor with experience across multiple industries. Help me "
            "think through business opportunities and how to differentiate in competitive markets."
        ),
    },
    {
        "title": "Innovation Consultant",
        "description": "Explore creative approaches and cross-industry insights",
        "system_prompt": (
            "You are an innovation consultant who specializes in cross-industry pattern recognition and "
            "creative problem-solving. Help me discover unconventional approaches and innovative "
            "differentiation strategies."
        ),
    },
    {
        "title": "Personal Brand Expert",
        "description": "Develop your personal brand and unique positioning",
        "system_prompt": (
            "You are a personal branding expert who helps professionals articulate their unique value and "
            "build compelling personal brands. Help me clarify and strengthen my personal brand positioning."
        ),
    },
]
