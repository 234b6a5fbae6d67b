"""Console UI for parla application."""

from core.config import language_name
from cli.api_client import ParlaAPIClient

HELP = ('Commands: "reviews" for due words, "words" for your vocabulary, '
        '"struggle <word>" to add a word, "audio <file.wav>" to speak a recording, '
        '"exit" to hang up')


class ConsoleUI:
    """Text console conversation with a contact."""

    def __init__(self, client: ParlaAPIClient, contact: dict = None,
                 target_language: str = None, native_language: str = None):
        self.client = client
        self.contact = contact
        self.target_language = target_language
        self.native_language = native_language
        self.conversation = None

    def print_spoken(self, turn: dict):
        """Print what the assistant said this turn."""
        speaker = self.contact['name'] if self.contact else 'AI'
        for item in turn['spoken']:
            if item['language']:
                print(f"{speaker} [{language_name(item['language'])}]: {item['text']}")
            else:
                print(f"{speaker}: {item['text']}")

    def print_vocabulary(self, turn: dict):
        """Print vocabulary feedback for the last utterance."""
        vocabulary = turn['vocabulary']
        for corrected in vocabulary['corrected']:
            if corrected['promoted']:
                print(f"  * '{corrected['word']}' mastered!")
            else:
                print(f"  + '{corrected['word']}' used well (severity {corrected['severity']})")
        for struggling in vocabulary['struggling']:
            print(f"  - '{struggling['word']}' needs practice (severity {struggling['severity']})")

    def print_escalation(self, turn: dict):
        if turn['failed']:
            print(f"  ({turn['escalation_level']}, {turn['consecutive_failures']} failed turn(s) in a row)")

    def print_turn(self, turn: dict):
        self.print_spoken(turn)
        self.print_vocabulary(turn)
        self.print_escalation(turn)
        self.print_reminders()

    def print_reviews(self):
        words = self.client.get_review_words(self.conversation['target_language'])['words']
        if not words:
            print('No words due for review.')
            return
        print('\n--- DUE FOR REVIEW ---')
        for w in words:
            print(f"  {w['word']}")
        print('----------------------')

    def print_words(self):
        language = self.conversation['target_language']
        struggling = self.client.get_struggling_words(language)['words']
        proficient = self.client.get_proficient_words(language)['words']
        print('\n' + '=' * 50)
        print(f'VOCABULARY ({language_name(language)})')
        print('=' * 50)
        print(f'\nStruggling: {len(struggling)}')
        for w in struggling:
            print(f"  {w['word']:<20} severity {w['severity']}  ease {w['ease_factor']:.2f}  "
                  f"every {w['current_interval_hours']}h")
        print(f'\nMastered: {len(proficient)}')
        if proficient:
            print(f"  {', '.join(w['word'] for w in proficient[-10:])}")
        print('\n' + '=' * 50 + '\n')

    def print_reminders(self):
        try:
            reminders = self.client.get_reminders()['reminders']
        except Exception as e:
            print(f"Error getting reminders: {e}")
            return
        for r in reminders:
            print(f"  (reminder: time to review '{r['word']}')")

    def run(self):
        """Run the main conversation loop."""
        # Check server connection
        try:
            health = self.client.health_check()
            print(f"Connected to parla server ({health['service']})")
        except Exception as e:
            print(f"Error: Cannot connect to server at {self.client.base_url}")
            print(f"Make sure the server is running: python run_server.py")
            return

        self.conversation = self.client.start_conversation(
            self.contact, self.target_language, self.native_language
        )
        conversation_id = self.conversation['conversation_id']
        name = self.contact['name'] if self.contact else 'your tutor'
        print(f"\nCalling {name}... practicing {language_name(self.conversation['target_language'])}")
        print(HELP + '\n')

        try:
            while True:
                user_input = input('==> ').strip()
                command = user_input.lower()

                if command == 'exit':
                    print('Goodbye!')
                    return

                elif command == 'reviews':
                    try:
                        self.print_reviews()
                    except Exception as e:
                        print(f"Error getting reviews: {e}")

                elif command == 'words':
                    try:
                        self.print_words()
                    except Exception as e:
                        print(f"Error getting vocabulary: {e}")

                elif command.startswith('struggle '):
                    word = user_input[len('struggle '):].strip()
                    try:
                        record = self.client.mark_struggling(word, self.conversation['target_language'])
                        print(f"'{record['word']}' added (severity {record['severity']})")
                    except Exception as e:
                        print(f"Error adding word: {e}")

                elif command.startswith('audio '):
                    path = user_input[len('audio '):].strip()
                    try:
                        with open(path, 'rb') as f:
                            audio = f.read()
                        turn = self.client.send_audio(conversation_id, audio)
                    except Exception as e:
                        print(f"Error sending audio: {e}")
                        continue
                    if turn['transcript']:
                        print(f"(heard: {turn['transcript']})")
                    self.print_turn(turn)

                else:
                    # Blank input counts as a turn the tutor did not understand
                    try:
                        turn = self.client.send_text(conversation_id, user_input)
                    except Exception as e:
                        print(f"Error sending message: {e}")
                        continue
                    self.print_turn(turn)
        finally:
            try:
                self.client.end_conversation(conversation_id)
            except Exception as e:
                print(f"Error hanging up: {e}")
