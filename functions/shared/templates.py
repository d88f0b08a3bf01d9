# Copyright 2025 Google LLC
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# ==============================================================================

import re
from dataclasses import dataclass
from enum import StrEnum
from typing import List, Optional


class TemplateCategory(StrEnum):
    ENCOURAGEMENT = "encouragement"
    HOLIDAY = "holiday"
    CELEBRATION = "celebration"
    SCHOOL = "school"
    PATRIOTIC = "patriotic"
    SPIRITUAL = "spiritual"
    APPRECIATION = "appreciation"

    @property
    def display_name(self) -> str:
        return self.value.capitalize()


@dataclass(frozen=True)
class TemplateItem:
    name: str
    message: str
    image_name: str
    category: TemplateCategory

    @property
    def id(self) -> str:
        return re.sub(r"[^a-z0-9]+", "-", self.name.lower()).strip("-")


@dataclass(frozen=True)
class MessageCategory:
    name: str
    description: str


_C = TemplateCategory

TEMPLATES: List[TemplateItem] = [
    TemplateItem("Hey! How Are You?", "Just checking in! Hope today's been kind to you.", "Question marks", _C.ENCOURAGEMENT),
    TemplateItem("Aspirational Constellation", "Reach for the stars, your hard work shines brightly.", "Aspirational constellation w  stars", _C.ENCOURAGEMENT),
    TemplateItem("For a Great Teacher", "Thank you for being the BEST teacher!", "Breath of fresh air  scene design", _C.ENCOURAGEMENT),
    TemplateItem("Thinking of You", "You've been on my mind, just wanted to send a little positivity.", "Thinking bubbles", _C.ENCOURAGEMENT),
    TemplateItem("Amazing Accomplishments", "You've done something amazing, congratulations!", "Landscape with mountains", _C.ENCOURAGEMENT),
    TemplateItem("New Horizons", "May your next adventure be your best one yet.", "Breathing or standing atop a view", _C.ENCOURAGEMENT),
    TemplateItem("Peaceful Reflections", "Here's to still moments and calm hearts.", "Landscape with water", _C.ENCOURAGEMENT),
    TemplateItem("Baby Shower Wishes", "Wishing joy to you and the little one on the way.", "Baby shower balloons, cradle, rattle", _C.HOLIDAY),
    TemplateItem("Funny Halloween Boo", "Sending you a frightfully fun hello!", "Boo! Boo! Boo! From ghost", _C.HOLIDAY),
    TemplateItem("Spooky Greetings", "Ghostly giggles and ghastly good fun, happy Halloween!", "Scarey monsters and ghost", _C.HOLIDAY),
    TemplateItem("Shadow Realm", "Something spooky this way sends good vibes.", "Scarey black and creepy shadow", _C.HOLIDAY),
    TemplateItem("Autumn Blessings", "Every day is a day to be thankful.", "Fall seasonal scene-leaves, pumpkins", _C.HOLIDAY),
    TemplateItem("Thanksgiving Cheer", "Count your blessings and share gratitude.", "Pumpkins, leaves, scenic", _C.HOLIDAY),
    TemplateItem("Thanksgiving Feast", "Enjoy your day! Time for food, family, and friends.", "Turkey on a platter", _C.HOLIDAY),
    TemplateItem("New Year Countdown", "Here's to a bright new year filled with growth and joy.", "Calendar with new year", _C.HOLIDAY),
    TemplateItem("Graduation Success", "You did it! Congratulations on your achievement.", "Cap gown and festive streamers", _C.CELEBRATION),
    TemplateItem("Turning a New Chapter", "The story continues, onward to your next success.", "Book turning to new chapter", _C.CELEBRATION),
    TemplateItem("Wedding Day Love", "Wishing you a lifetime of love and joy together.", "Hearts, wedding dress, tuxedo", _C.CELEBRATION),
    TemplateItem("Anniversary Wishes", "May your love grow stronger every year.", "Hearts, love, anniversary", _C.CELEBRATION),
    TemplateItem("You're Invited!", "Let's celebrate together, can't wait to see you there.", "Streamers, balloons, and party hats", _C.CELEBRATION),
    TemplateItem("Back to School!", "It's a new year for learning, laughter, and growth!", "Finger over lips", _C.SCHOOL),
    TemplateItem("School Daze", "Time to learn, grow, and shine all year long.", "School daze images", _C.SCHOOL),
    TemplateItem("Creative Success", "You've designed your own success, keep going strong!", "HW  CG  Success in a design", _C.SCHOOL),
    TemplateItem("Flag Tribute", "Honoring the brave and the free.", "Flag design 1", _C.PATRIOTIC),
    TemplateItem("Veterans Day Honor", "Thank you for your service and dedication.", "Flag design 2", _C.PATRIOTIC),
    TemplateItem("Salute to Service", "With respect and gratitude for your sacrifice.", "U.S. Flag", _C.PATRIOTIC),
    TemplateItem("Me & You, Unity", "Together we're stronger. Here's to friendship and peace.", "Me You  US type of design", _C.PATRIOTIC),
    TemplateItem("Heavenly View", "The angels celebrate with you today.", "The sky heavens", _C.SPIRITUAL),
    TemplateItem("Guided by Light", "The path forward is bright and full of grace.", "Sun prominent in landscape", _C.SPIRITUAL),
    TemplateItem("Teacher Appreciation", "Thank you for inspiring and guiding with joy!", "XOXOXOXOXO", _C.APPRECIATION),
]

MESSAGE_CATEGORIES: List[MessageCategory] = [
    MessageCategory("Birthday", "Birthday celebrations and wishes"),
    MessageCategory("Thank You", "Gratitude and appreciation messages"),
    MessageCategory("Congratulations", "Achievement and success messages"),
    MessageCategory("Get Well", "Health and recovery wishes"),
    MessageCategory("Love & Romance", "Romantic and love messages"),
    MessageCategory("Friendship", "Friendship and connection messages"),
    MessageCategory("Holiday", "Holiday and seasonal greetings"),
    MessageCategory("Sympathy", "Condolence and sympathy messages"),
    MessageCategory("Motivation", "Inspirational and motivational content"),
    MessageCategory("Business", "Professional and business communications"),
]


def templates_in_category(category: TemplateCategory) -> List[TemplateItem]:
    return [t for t in TEMPLATES if t.category == category]


def find_template(name: str) -> Optional[TemplateItem]:
    for template in TEMPLATES:
        if template.name == name or template.id == name:
            return template
    return None
