"""
Game constants for Farkle.
All point values are fixed; the ruleset is not configurable.
"""

# Dice
DICE_PER_SET = 6
DIE_FACES = 6

# Roster
MAX_PLAYERS = 2
MIN_PLAYERS = 2

# Winning
WINNING_SCORE = 10000

# Single dice
SCORE_SINGLE_1 = 100
SCORE_SINGLE_5 = 50

# N-of-a-kind
SCORE_TRIPLE_1 = 1000
SCORE_TRIPLE_MULTIPLIER = 100  # Three of face F (F != 1) pays F * 100
SCORE_FOUR_OF_A_KIND = 1000
SCORE_FIVE_OF_A_KIND = 2000
SCORE_SIX_OF_A_KIND = 3000

# Six-dice specials
SCORE_THREE_PAIRS = 1500
SCORE_STRAIGHT = 2500

# Count -> fixed bonus for four, five and six of a kind
N_OF_A_KIND_SCORES = {
    6: SCORE_SIX_OF_A_KIND,
    5: SCORE_FIVE_OF_A_KIND,
    4: SCORE_FOUR_OF_A_KIND,
}

# Combination labels shown to players
COMBO_STRAIGHT = "Straight (1-6)"
COMBO_THREE_PAIRS = "Three pairs"
COMBO_SIX_OF_A_KIND = "Six of a kind"
COMBO_SIMPLE = "Simple combination"

KIND_NAMES = {
    3: "Three",
    4: "Four",
    5: "Five",
    6: "Six",
}
